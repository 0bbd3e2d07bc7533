"""SQLAlchemy ORM models for the product catalog."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base class for ORM models."""


class Product(Base):
    """A catalog product imported from the storefront."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_url: Mapped[str] = mapped_column(String, nullable=False)
    image: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PUBLISHED")
    specs: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ai_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    scraped_reviews: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    generated_options: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    embedding: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    options: Mapped[list["ProductOption"]] = relationship(back_populates="product", cascade="all, delete-orphan")
    variants: Mapped[list["ProductVariant"]] = relationship(back_populates="product", cascade="all, delete-orphan")
    images: Mapped[list["ProductImage"]] = relationship(back_populates="product", cascade="all, delete-orphan")

    __table_args__ = (Index("ix_products_purchase_url", "purchase_url"),)


class ProductOption(Base):
    """A named value set (colour, size) with the untranslated originals."""

    __tablename__ = "product_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    values: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    original_values: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    product: Mapped[Product] = relationship(back_populates="options")


class ProductVariant(Base):
    """One purchasable combination of option values."""

    __tablename__ = "product_variants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    combination: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image: Mapped[str | None] = mapped_column(String, nullable=True)

    product: Mapped[Product] = relationship(back_populates="variants")


class ProductImage(Base):
    """Gallery or description image; description images sort after the gallery."""

    __tablename__ = "product_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    url: Mapped[str] = mapped_column(String, nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    type: Mapped[str] = mapped_column(String, nullable=False, default="GALLERY")

    product: Mapped[Product] = relationship(back_populates="images")

    __table_args__ = (Index("ix_product_images_product_order", "product_id", "order"),)
