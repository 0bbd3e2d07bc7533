"""Single-item and batched translation with validation and tier fallback."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Sequence

from cartscout.ai import prompts
from cartscout.ai.client import CompletionClient
from cartscout.ai.fallback import Tier, run_tiers, tiers_for
from cartscout.errors import MalformedResponseError, ResidualScriptError, TiersExhaustedError
from cartscout.logging_config import get_logger
from cartscout.normalizers import has_source_script, is_target_script, strip_cyrillic

LOGGER = get_logger(__name__)

EXPLANATION_MARKERS = ("---", "**Explanation", "**Rationale", "Note:", "Explanation:")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")
_EDGE_DASHES_RE = re.compile(r"^[-/]+|[-/]+$")
_EDGE_QUOTES_RE = re.compile(r"^[\"']|[\"']$")


def needs_translation(text: str | None) -> bool:
    """Empty items and items already written in the target script are passed through."""

    if not text or not text.strip():
        return False
    return not is_target_script(text)


def strip_code_fences(content: str) -> str:
    return _FENCE_RE.sub("", content.strip()).strip()


def clean_translation(content: str) -> str:
    """Reduce a free-form completion to the bare translated line."""

    text = content.strip().replace("```", "")
    for marker in EXPLANATION_MARKERS:
        if marker in text:
            text = text.split(marker)[0].strip()
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines:
        text = lines[0]
    text = strip_cyrillic(text).strip()
    text = _EDGE_DASHES_RE.sub("", text).strip()
    return _EDGE_QUOTES_RE.sub("", text).strip()


def parse_batch_response(content: str) -> list[str]:
    """Accept ``{"translations": [...]}``, a bare list, or an object whose first value is a list."""

    try:
        parsed: Any = json.loads(strip_code_fences(content))
    except ValueError as exc:
        raise MalformedResponseError(f"batch response is not JSON: {exc}") from exc

    values: Any = None
    if isinstance(parsed, list):
        values = parsed
    elif isinstance(parsed, dict):
        values = parsed.get("translations")
        if values is None and parsed:
            values = next(iter(parsed.values()))
    if not isinstance(values, list):
        raise MalformedResponseError("batch response carries no translation list")
    return ["" if value is None else str(value) for value in values]


class Translator:
    """Translate names, option labels and reviews into the target script."""

    def __init__(self, client: CompletionClient, ai_config: dict[str, Any]) -> None:
        self.client = client
        self.ai_config = ai_config

    def tiers(self, context: str) -> list[Tier]:
        return tiers_for(self.ai_config, context)

    async def translate_text(self, text: str | None, context: str = "name") -> str:
        """Translate one string; on total failure the original text comes back."""

        if not needs_translation(text):
            return text or ""
        system = prompts.TRANSLATION_SYSTEM.get(context, prompts.GENERAL)

        async def _call(model: str) -> str:
            content = await self.client.complete(
                model=model,
                messages=[{"role": "system", "content": system}, {"role": "user", "content": text}],
                temperature=0.3,
                max_tokens=1000,
            )
            cleaned = clean_translation(content)
            if context == "option" and has_source_script(cleaned):
                raise ResidualScriptError(f"translation still carries source script: {cleaned!r}")
            if not cleaned and context != "option":
                raise MalformedResponseError("empty translation")
            return cleaned

        try:
            return await run_tiers(self.tiers(context), _call, label=f"translate[{context}]")
        except TiersExhaustedError as exc:
            LOGGER.error("Translation failed on every model (%s); keeping original", exc)
            return text

    async def translate_batch(self, texts: Sequence[str | None], context: str = "option") -> list[str]:
        """Translate *texts* in one request; the result always has the input's length."""

        results = [text if text is not None else "" for text in texts]
        pending = [(index, text) for index, text in enumerate(results) if needs_translation(text)]
        if not pending:
            return results

        system = prompts.BATCH_SYSTEM.get(context, prompts.REVIEW_BATCH)
        payload = json.dumps([text for _, text in pending], ensure_ascii=False)

        async def _call(model: str) -> list[str]:
            LOGGER.info("[ai] Sending batch of %d %s item(s) to %s", len(pending), context, model)
            content = await self.client.complete(
                model=model,
                messages=[{"role": "system", "content": system}, {"role": "user", "content": payload}],
                temperature=0.3,
                json_mode=True,
            )
            values = parse_batch_response(content)
            if len(values) != len(pending):
                raise MalformedResponseError(f"batch returned {len(values)} items for {len(pending)}")
            if context == "option" and any(has_source_script(value) for value in values):
                raise ResidualScriptError("batch translation still carries source script")
            return values

        try:
            values = await run_tiers(self.tiers(context), _call, label=f"batch[{context}]")
        except TiersExhaustedError as exc:
            LOGGER.warning("Batch translation failed (%s); translating items one by one", exc)
            values = list(await asyncio.gather(*(self.translate_text(text, context) for _, text in pending)))

        for (index, original), value in zip(pending, values):
            value = value.strip() if isinstance(value, str) else ""
            results[index] = value or original
        return results
