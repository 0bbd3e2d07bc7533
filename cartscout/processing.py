"""Turn a raw product snapshot into a translated, annotated product."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from cartscout.ai.client import CompletionClient
from cartscout.ai.metadata import MetadataGenerator
from cartscout.ai.translate import Translator
from cartscout.logging_config import get_logger
from cartscout.models import NormalizedProduct, RawProductSnapshot, Review, TranslatedOption, VariantOption
from cartscout.normalizers import TARGET_SCRIPT_RE, is_edible

LOGGER = get_logger(__name__)


def keep_translated_label(source: str, translated: str | None) -> bool:
    """Drop empty translations and lone target-script letters produced from longer labels."""

    if not translated or not translated.strip():
        return False
    translated = translated.strip()
    if len(translated) == 1 and TARGET_SCRIPT_RE.match(translated) and len(source) != 1:
        return False
    return True


def pair_options(options: list[VariantOption], translated: list[str]) -> list[TranslatedOption]:
    paired = []
    for option, label in zip(options, translated):
        label = label or option.label
        if not keep_translated_label(option.label, label):
            LOGGER.debug("Discarding translated option fragment %r for %r", label, option.label)
            continue
        paired.append(TranslatedOption(option=option, translated_label=label.strip()))
    return paired


class ProductProcessor:
    def __init__(
        self,
        translator: Translator,
        metadata: MetadataGenerator,
        *,
        max_options: int = 30,
        max_reviews: int = 8,
        skip_edible: bool = False,
    ) -> None:
        self.translator = translator
        self.metadata = metadata
        self.max_options = max_options
        self.max_reviews = max_reviews
        self.skip_edible = skip_edible

    @classmethod
    def from_config(cls, config: dict[str, Any], client: CompletionClient) -> "ProductProcessor":
        ai = config.get("ai", {})
        return cls(
            Translator(client, ai),
            MetadataGenerator(client, ai),
            max_options=int(ai.get("max_options", 30)),
            max_reviews=int(ai.get("max_reviews", 8)),
            skip_edible=bool(config.get("catalog", {}).get("skip_edible", False)),
        )

    async def normalize_snapshot(self, snapshot: RawProductSnapshot) -> NormalizedProduct | None:
        """Translate and annotate *snapshot*; ``None`` when the product is filtered out."""

        if self.skip_edible and is_edible(f"{snapshot.name} {snapshot.description_text}"):
            LOGGER.info("Skipping edible product %s", snapshot.source_url)
            return None

        options = list(snapshot.variant_options[: self.max_options])
        reviews = list(snapshot.reviews[: self.max_reviews])

        started = time.monotonic()
        name, specs, option_labels, review_texts = await asyncio.gather(
            self.translator.translate_text(snapshot.name, "name"),
            self.metadata.format_description(snapshot.description_text),
            self.translator.translate_batch([option.label for option in options], "option"),
            self.translator.translate_batch([review.comment for review in reviews], "review"),
        )
        LOGGER.info("Parallel AI tasks finished in %.1fs", time.monotonic() - started)

        translated_options = pair_options(options, option_labels)
        translated_reviews = [
            Review(name=review.name, text=text or review.comment, photos=review.photos)
            for review, text in zip(reviews, review_texts)
        ]

        ai_metadata = await self.metadata.generate_metadata(name, snapshot.description_text)
        LOGGER.info("%d options ready, %d reviews translated", len(translated_options), len(translated_reviews))

        return NormalizedProduct(
            snapshot=snapshot,
            name=name,
            options=translated_options,
            reviews=translated_reviews,
            specs=specs,
            ai_metadata=ai_metadata,
        )
