"""In-memory records passed between extraction, processing and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class VariantOption:
    label: str
    sizes: tuple[str, ...] = ()
    source_price: float = 0.0
    thumbnail: str | None = None


@dataclass(frozen=True)
class Review:
    name: str
    text: str
    purchased_variant: str | None = None
    photos: tuple[str, ...] = ()

    @property
    def comment(self) -> str:
        """Review text with the purchased variant appended, as shown to shoppers."""

        if self.purchased_variant:
            return f"{self.text} (Option: {self.purchased_variant})"
        return self.text


@dataclass(frozen=True)
class RawProductSnapshot:
    """Everything read from one product view, in source currency and script."""

    source_url: str
    name: str
    images: tuple[str, ...] = ()
    description_text: str = ""
    main_page_price: float | None = None
    variant_options: tuple[VariantOption, ...] = ()
    reviews: tuple[Review, ...] = ()
    description_images: tuple[str, ...] = ()


@dataclass
class TranslatedOption:
    option: VariantOption
    translated_label: str


@dataclass
class NormalizedProduct:
    snapshot: RawProductSnapshot
    name: str
    options: list[TranslatedOption] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    specs: dict[str, Any] = field(default_factory=dict)
    ai_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PersistableOption:
    name: str
    values: list[str]
    originals: list[str] = field(default_factory=list)


@dataclass
class PersistableVariant:
    combination: dict[str, str]
    price: int
    base_price: int
    image: str | None = None


@dataclass
class PersistableProduct:
    name: str
    price: int
    base_price: int
    purchase_url: str
    images: list[str] = field(default_factory=list)
    description_images: list[str] = field(default_factory=list)
    specs: dict[str, Any] = field(default_factory=dict)
    options: list[PersistableOption] = field(default_factory=list)
    variants: list[PersistableVariant] = field(default_factory=list)
    reviews: list[dict[str, Any]] = field(default_factory=list)
    generated_options: list[dict[str, Any]] = field(default_factory=list)
    ai_metadata: dict[str, Any] = field(default_factory=dict)
