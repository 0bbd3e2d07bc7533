import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import FakeCompletionClient

from cartscout.catalog import CatalogAdapter, build_persistable, canonical_key, embedding_text
from cartscout.errors import PersistenceBlockedError
from cartscout.models import NormalizedProduct, RawProductSnapshot, TranslatedOption, VariantOption
from cartscout.pricing import PriceNormalizer
from cartscout.storage import repo
from cartscout.storage.models_sql import Product, ProductImage, ProductVariant

URL = "https://mobile.pinduoduo.com/goods.html?goods_id=123"


def _normalized(
    url: str = URL,
    *,
    price: float | None = 10,
    options: list[TranslatedOption] | None = None,
    images: tuple[str, ...] = ("https://img.example.com/1.jpg", "https://img.example.com/2.jpg"),
    description_images: tuple[str, ...] = (),
) -> NormalizedProduct:
    snapshot = RawProductSnapshot(
        source_url=url,
        name="黑色T恤",
        images=images,
        main_page_price=price,
        description_images=description_images,
    )
    return NormalizedProduct(snapshot=snapshot, name="تيشيرت أسود", options=options or [], specs={"المادة": "قطن"})


def _option(label: str, translated: str, price: float, *, sizes: tuple[str, ...] = (), thumb: str | None = None):
    return TranslatedOption(VariantOption(label, sizes=sizes, source_price=price, thumbnail=thumb), translated)


def test_scenario_base_and_final_price() -> None:
    record = build_persistable(_normalized(), PriceNormalizer())
    assert record.base_price == 2000
    assert record.price == 2300
    assert record.purchase_url == URL


def test_base_price_falls_back_to_cheapest_option() -> None:
    normalized = _normalized(
        price=None,
        options=[_option("红", "أحمر", 12.5), _option("蓝", "أزرق", 8), _option("绿", "أخضر", 0)],
    )
    record = build_persistable(normalized, PriceNormalizer())
    assert record.base_price == 1600
    assert record.price == 1840


def test_variants_cover_colour_size_combinations_once() -> None:
    normalized = _normalized(
        options=[
            _option("黑", "أسود", 10, sizes=("M", "L"), thumb="https://img.example.com/black.jpg"),
            _option("黑", "أسود", 10, sizes=("L",)),
            _option("白", "أبيض", 0),
        ]
    )
    record = build_persistable(normalized, PriceNormalizer())

    combos = [variant.combination for variant in record.variants]
    assert combos == [
        {"اللون": "أسود", "المقاس": "M"},
        {"اللون": "أسود", "المقاس": "L"},
        {"اللون": "أبيض"},
    ]
    black, _, white = record.variants
    assert black.base_price == 2000 and black.price == 2300
    assert black.image == "https://img.example.com/black.jpg"
    # No option price and no thumbnail: product base price and first gallery image.
    assert white.base_price == 2000
    assert white.image == "https://img.example.com/1.jpg"
    assert [option.name for option in record.options] == ["اللون", "المقاس"]
    assert record.options[0].values == ["أسود", "أبيض"]
    assert record.options[0].originals == ["黑", "白"]


def test_upsert_creates_product_variants_and_ordered_images(session_factory) -> None:
    adapter = CatalogAdapter(session_factory, PriceNormalizer())
    normalized = _normalized(
        options=[_option("黑", "أسود", 10)],
        description_images=("https://img.example.com/d1.jpg", "https://img.example.com/d2.jpg"),
    )

    product_id = asyncio.run(adapter.upsert_if_new(normalized))

    assert product_id is not None
    with session_factory() as session:
        product = session.get(Product, product_id)
        assert product.price == 2300 and product.base_price == 2000
        assert product.image == "https://img.example.com/1.jpg"
        assert product.specs == {"المادة": "قطن"}
        assert len(product.variants) == 1
        rows = session.execute(select(ProductImage).order_by(ProductImage.order)).scalars().all()
        assert [(row.order, row.type) for row in rows] == [
            (0, "GALLERY"),
            (1, "GALLERY"),
            (100, "DESCRIPTION"),
            (101, "DESCRIPTION"),
        ]


def test_existing_goods_id_is_skipped_without_create(session_factory, monkeypatch) -> None:
    with session_factory() as session:
        session.add(Product(name="old", price=1, base_price=1, purchase_url=URL + "&refer_page=index"))
        session.commit()

    created = []
    monkeypatch.setattr(repo, "create_product", lambda *args, **kwargs: created.append(args))
    adapter = CatalogAdapter(session_factory, PriceNormalizer())

    assert adapter.exists("https://m.pinduoduo.com/home/goods?goods_id=123") is True
    assert asyncio.run(adapter.upsert_if_new(_normalized())) is None
    assert created == []


def test_longer_goods_id_is_not_a_duplicate(session_factory) -> None:
    with session_factory() as session:
        session.add(Product(name="old", price=1, base_price=1, purchase_url=URL + "4"))
        session.commit()

    adapter = CatalogAdapter(session_factory, PriceNormalizer())
    assert adapter.exists(URL) is False
    assert asyncio.run(adapter.upsert_if_new(_normalized())) is not None


def test_same_canonical_id_stored_at_most_once(session_factory) -> None:
    adapter = CatalogAdapter(session_factory, PriceNormalizer())
    first = asyncio.run(adapter.upsert_if_new(_normalized()))
    second = asyncio.run(adapter.upsert_if_new(_normalized(URL + "&page_from=23")))

    assert first is not None and second is None
    with session_factory() as session:
        assert len(session.execute(select(Product)).scalars().all()) == 1


def test_url_without_goods_id_requires_exact_match(session_factory) -> None:
    adapter = CatalogAdapter(session_factory, PriceNormalizer())
    url = "https://mobile.pinduoduo.com/item/abc"
    assert asyncio.run(adapter.upsert_if_new(_normalized(url))) is not None
    assert adapter.exists(url) is True
    assert adapter.exists(url + "d") is False


def test_allow_list_rejection_stops_the_session(session_factory, monkeypatch) -> None:
    def refuse(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("host not in allow_list"))

    monkeypatch.setattr(repo, "create_product", refuse)
    adapter = CatalogAdapter(session_factory, PriceNormalizer())

    with pytest.raises(PersistenceBlockedError):
        asyncio.run(adapter.upsert_if_new(_normalized()))


def test_other_write_errors_abandon_only_the_product(session_factory, monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(repo, "create_product", fail)
    adapter = CatalogAdapter(session_factory, PriceNormalizer())
    assert asyncio.run(adapter.upsert_if_new(_normalized())) is None


def test_embedding_is_stored_in_background(session_factory) -> None:
    client = FakeCompletionClient(lambda model, messages: "", vector=[0.5] * 10)
    adapter = CatalogAdapter(session_factory, PriceNormalizer(), client=client, embedding={"dimensions": 4})

    async def scenario():
        product_id = await adapter.upsert_if_new(_normalized())
        await adapter.drain()
        return product_id

    product_id = asyncio.run(scenario())

    assert client.embedded == [embedding_text("تيشيرت أسود", {"المادة": "قطن"})]
    with session_factory() as session:
        assert session.get(Product, product_id).embedding == [0.5] * 4


def test_reprice_all_uses_stored_base_prices(session_factory) -> None:
    with session_factory() as session:
        product = Product(name="p", price=0, base_price=2000, purchase_url=URL)
        product.variants = [
            ProductVariant(combination={"اللون": "أسود"}, price=0, base_price=1000),
            ProductVariant(combination={"اللون": "أبيض"}, price=2300, base_price=0),
        ]
        session.add(product)
        session.commit()

    adapter = CatalogAdapter(session_factory, PriceNormalizer())
    assert adapter.reprice_all() == (1, 1)

    with session_factory() as session:
        product = session.execute(select(Product)).scalars().one()
        assert product.price == 2300
        assert sorted(variant.price for variant in product.variants) == [1150, 2300]


def test_canonical_key() -> None:
    assert canonical_key(URL) == "123"
    assert canonical_key("https://example.com/") is None
