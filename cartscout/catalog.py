"""Map normalized products onto catalog records with duplicate suppression."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cartscout.ai.client import CompletionClient
from cartscout.errors import PersistenceBlockedError, RemoteServiceError
from cartscout.logging_config import get_logger
from cartscout.models import (
    NormalizedProduct,
    PersistableOption,
    PersistableProduct,
    PersistableVariant,
)
from cartscout.normalizers import get_goods_id, normalize_product_url
from cartscout.pricing import PriceNormalizer
from cartscout.storage import repo
from cartscout.storage.models_sql import Product, ProductOption, ProductVariant

LOGGER = get_logger(__name__)

DEFAULT_COLOR_OPTION = "اللون"
DEFAULT_SIZE_OPTION = "المقاس"


def canonical_key(url: str | None) -> str | None:
    """The storefront's ``goods_id``; ``None`` when the address carries none."""

    return get_goods_id(url)


def _base_price(normalized: NormalizedProduct, normalizer: PriceNormalizer, option_bases: Iterable[int]) -> int:
    main_price = normalized.snapshot.main_page_price
    if main_price and main_price > 0:
        return normalizer.to_target(main_price)
    positive = [value for value in option_bases if value > 0]
    return min(positive) if positive else 0


def build_persistable(
    normalized: NormalizedProduct,
    normalizer: PriceNormalizer,
    *,
    color_option: str = DEFAULT_COLOR_OPTION,
    size_option: str = DEFAULT_SIZE_OPTION,
) -> PersistableProduct:
    """Build the full record: product prices, option sets and one variant per combination."""

    snapshot = normalized.snapshot
    option_bases = [normalizer.to_target(item.option.source_price) for item in normalized.options]
    base_price = _base_price(normalized, normalizer, option_bases)

    colors: dict[str, str] = {}
    sizes: dict[str, str] = {}
    for item in normalized.options:
        colors.setdefault(item.translated_label, item.option.label)
        for size in item.option.sizes:
            sizes.setdefault(size, size)

    options = []
    if colors:
        options.append(PersistableOption(color_option, list(colors), list(colors.values())))
    if sizes:
        options.append(PersistableOption(size_option, list(sizes), list(sizes.values())))

    fallback_image = snapshot.images[0] if snapshot.images else None
    variants: list[PersistableVariant] = []
    generated_options: list[dict[str, Any]] = []
    seen: set[str] = set()
    for item, option_base in zip(normalized.options, option_bases):
        variant_base = option_base or base_price
        image = item.option.thumbnail or fallback_image
        generated_options.append(
            {
                "color": item.translated_label,
                "originalColor": item.option.label,
                "sizes": list(item.option.sizes),
                "price": option_base,
                "cnyPrice": item.option.source_price,
                "thumbnail": item.option.thumbnail,
            }
        )
        combinations = (
            [{color_option: item.translated_label, size_option: size} for size in item.option.sizes]
            if item.option.sizes
            else [{color_option: item.translated_label}]
        )
        for combination in combinations:
            key = json.dumps(combination, ensure_ascii=False, sort_keys=True)
            if key in seen:
                continue
            seen.add(key)
            variants.append(
                PersistableVariant(
                    combination=combination,
                    price=normalizer.normalize(variant_base),
                    base_price=variant_base,
                    image=image,
                )
            )

    return PersistableProduct(
        name=normalized.name,
        price=normalizer.normalize(base_price),
        base_price=base_price,
        purchase_url=normalize_product_url(snapshot.source_url) or snapshot.source_url,
        images=list(snapshot.images),
        description_images=list(snapshot.description_images),
        specs=dict(normalized.specs),
        options=options,
        variants=variants,
        reviews=[{"name": review.name, "photos": list(review.photos), "comment": review.text} for review in normalized.reviews],
        generated_options=generated_options,
        ai_metadata=dict(normalized.ai_metadata),
    )


def embedding_text(name: str, specs: dict[str, Any], max_chars: int = 1000) -> str:
    return f"{name} {json.dumps(specs or {}, ensure_ascii=False)}".strip()[:max_chars]


class CatalogAdapter:
    """Persist products once per canonical id; request embeddings in the background."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        normalizer: PriceNormalizer,
        *,
        client: CompletionClient | None = None,
        embedding: dict[str, Any] | None = None,
        blocked_markers: Iterable[str] = ("allow_list",),
        color_option: str = DEFAULT_COLOR_OPTION,
        size_option: str = DEFAULT_SIZE_OPTION,
    ) -> None:
        self.session_factory = session_factory
        self.normalizer = normalizer
        self.client = client
        self.embedding = embedding or {}
        self.blocked_markers = tuple(blocked_markers)
        self.color_option = color_option
        self.size_option = size_option
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        session_factory: sessionmaker[Session],
        *,
        client: CompletionClient | None = None,
    ) -> "CatalogAdapter":
        catalog = config.get("catalog", {})
        return cls(
            session_factory,
            PriceNormalizer.from_config(config),
            client=client,
            embedding=config.get("embedding", {}),
            blocked_markers=config.get("output", {}).get("blocked_markers") or ("allow_list",),
            color_option=catalog.get("color_option", DEFAULT_COLOR_OPTION),
            size_option=catalog.get("size_option", DEFAULT_SIZE_OPTION),
        )

    def _is_blocked(self, exc: BaseException) -> bool:
        message = str(exc)
        return any(marker in message for marker in self.blocked_markers)

    def _existing(self, session: Session, url: str) -> Product | None:
        key = canonical_key(url)
        if key:
            # "goods_id=12" is also a substring of "goods_id=123"
            for product in repo.find_by_url_fragment(session, f"goods_id={key}"):
                if canonical_key(product.purchase_url) == key:
                    return product
            return None
        return repo.find_by_url(session, url)

    def exists(self, url: str) -> bool:
        """Pre-check before scraping; a failing lookup lets the scrape go ahead."""

        try:
            with self.session_factory() as session:
                existing = self._existing(session, url)
        except SQLAlchemyError as exc:
            if self._is_blocked(exc):
                raise PersistenceBlockedError(f"catalog access refused: {exc}") from exc
            LOGGER.warning("Duplicate pre-check failed (%s); scraping anyway", exc)
            return False
        if existing is not None:
            LOGGER.info("Product %s already stored (id=%s)", canonical_key(url) or url, existing.id)
            return True
        return False

    async def upsert_if_new(self, normalized: NormalizedProduct) -> int | None:
        """Create the product unless its canonical id is already stored; returns the new id."""

        record = build_persistable(
            normalized,
            self.normalizer,
            color_option=self.color_option,
            size_option=self.size_option,
        )

        with self.session_factory() as session:
            try:
                existing = self._existing(session, record.purchase_url)
                if existing is not None:
                    LOGGER.info("Skipping duplicate in catalog (id=%s)", existing.id)
                    return None
                product = repo.create_product(
                    session,
                    self._product_row(record),
                    options=[
                        ProductOption(name=option.name, values=option.values, original_values=option.originals)
                        for option in record.options
                    ],
                    variants=[
                        ProductVariant(
                            combination=variant.combination,
                            price=variant.price,
                            base_price=variant.base_price,
                            image=variant.image,
                        )
                        for variant in record.variants
                    ],
                )
                session.commit()
                product_id = product.id
            except SQLAlchemyError as exc:
                session.rollback()
                if self._is_blocked(exc):
                    raise PersistenceBlockedError(f"catalog writes refused: {exc}") from exc
                LOGGER.error("Product creation failed for %s: %s", record.purchase_url, exc)
                return None

        if record.images or record.description_images:
            with self.session_factory() as session:
                try:
                    repo.create_images(session, product_id, record.images, record.description_images)
                    session.commit()
                except SQLAlchemyError as exc:
                    session.rollback()
                    LOGGER.error("Creating images for product %s failed: %s", product_id, exc)

        LOGGER.info("Stored product %s (%s, price=%s)", product_id, record.name[:30], record.price)
        self._schedule_embedding(product_id, record)
        return product_id

    def reprice_all(self) -> tuple[int, int]:
        with self.session_factory() as session:
            changed = repo.reprice_all(session, self.normalizer.reprice)
            session.commit()
        LOGGER.info("Repriced %d product(s) and %d variant(s)", *changed)
        return changed

    async def drain(self) -> None:
        """Wait for pending embedding requests."""

        if self._tasks:
            LOGGER.info("Waiting for %d pending embedding task(s)", len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Internals --------------------------------------------------------------

    @staticmethod
    def _product_row(record: PersistableProduct) -> Product:
        return Product(
            name=record.name,
            price=record.price,
            base_price=record.base_price,
            purchase_url=record.purchase_url,
            image=record.images[0] if record.images else None,
            status="PUBLISHED",
            specs=record.specs,
            ai_metadata=record.ai_metadata,
            scraped_reviews=record.reviews,
            generated_options=record.generated_options,
        )

    def _schedule_embedding(self, product_id: int, record: PersistableProduct) -> None:
        if self.client is None or not self.client.enabled or not self.embedding.get("enabled", True):
            return
        text = embedding_text(record.name, record.specs, int(self.embedding.get("max_chars", 1000)))
        task = asyncio.create_task(self._embed(self.client, product_id, text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _embed(self, client: CompletionClient, product_id: int, text: str) -> None:
        try:
            vector = await client.embed(
                text,
                model=str(self.embedding.get("model", "google/embeddinggemma-300m")),
                dimensions=int(self.embedding.get("dimensions", 384)),
                timeout_s=float(self.embedding.get("timeout_s", 30)),
            )
        except RemoteServiceError as exc:
            LOGGER.error("Embedding for product %s failed: %s", product_id, exc)
            return
        try:
            with self.session_factory() as session:
                repo.set_embedding(session, product_id, vector)
                session.commit()
        except SQLAlchemyError as exc:
            LOGGER.error("Saving embedding for product %s failed: %s", product_id, exc)
            return
        LOGGER.info("Embedding saved for product %s (%dd)", product_id, len(vector))
