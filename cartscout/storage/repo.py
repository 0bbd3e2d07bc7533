"""Repository helpers for the product catalog."""

from __future__ import annotations

from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models_sql import Product, ProductImage, ProductOption, ProductVariant

GALLERY = "GALLERY"
DESCRIPTION = "DESCRIPTION"
DESCRIPTION_ORDER_OFFSET = 100


def find_by_url_fragment(session: Session, fragment: str) -> list[Product]:
    """Return products whose purchase URL contains *fragment*."""

    stmt = select(Product).where(Product.purchase_url.contains(fragment, autoescape=True)).order_by(Product.id)
    return list(session.execute(stmt).scalars())


def find_by_url(session: Session, url: str) -> Product | None:
    stmt = select(Product).where(Product.purchase_url == url).limit(1)
    return session.execute(stmt).scalars().first()


def create_product(
    session: Session,
    product: Product,
    *,
    options: Iterable[ProductOption] = (),
    variants: Iterable[ProductVariant] = (),
) -> Product:
    product.options = list(options)
    product.variants = list(variants)
    session.add(product)
    session.flush()
    return product


def create_images(
    session: Session,
    product_id: int,
    gallery: Iterable[str],
    description: Iterable[str] = (),
) -> list[ProductImage]:
    rows = [ProductImage(product_id=product_id, url=url, order=index, type=GALLERY) for index, url in enumerate(gallery)]
    rows.extend(
        ProductImage(product_id=product_id, url=url, order=DESCRIPTION_ORDER_OFFSET + index, type=DESCRIPTION)
        for index, url in enumerate(description)
    )
    session.add_all(rows)
    session.flush()
    return rows


def set_embedding(session: Session, product_id: int, vector: list[float]) -> bool:
    product = session.get(Product, product_id)
    if product is None:
        return False
    product.embedding = list(vector)
    session.flush()
    return True


def reprice_all(session: Session, reprice: Callable[[int], int]) -> tuple[int, int]:
    """Recompute product and variant prices from their stored base prices.

    Returns ``(products_changed, variants_changed)``.
    """

    products_changed = 0
    variants_changed = 0
    for product in session.execute(select(Product)).scalars():
        new_price = reprice(product.base_price)
        if new_price != product.price:
            product.price = new_price
            products_changed += 1
        for variant in product.variants:
            base = variant.base_price or product.base_price
            new_variant_price = reprice(base)
            if new_variant_price != variant.price:
                variant.price = new_variant_price
                variants_changed += 1
    session.flush()
    return products_changed, variants_changed
