"""Structured description specs and search metadata."""

from __future__ import annotations

import json
from typing import Any

from cartscout.ai import prompts
from cartscout.ai.client import CompletionClient
from cartscout.ai.fallback import run_tiers, tiers_for
from cartscout.ai.translate import strip_code_fences
from cartscout.errors import MalformedResponseError, TiersExhaustedError
from cartscout.logging_config import get_logger

LOGGER = get_logger(__name__)

DESCRIPTION_FALLBACK_KEY = "وصف"


def parse_json_object(content: str) -> dict[str, Any]:
    try:
        parsed = json.loads(strip_code_fences(content))
    except ValueError as exc:
        raise MalformedResponseError(f"response is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedResponseError("response is not a JSON object")
    return parsed


class MetadataGenerator:
    def __init__(self, client: CompletionClient, ai_config: dict[str, Any]) -> None:
        self.client = client
        self.ai_config = ai_config

    async def format_description(self, text: str | None) -> dict[str, Any]:
        """Turn free description text into a key/value spec map."""

        if not text or not text.strip():
            return {}
        prompt = prompts.DESCRIPTION.format(text=text)

        async def _call(model: str) -> dict[str, Any]:
            content = await self.client.complete(
                model=model,
                messages=[
                    {"role": "system", "content": prompts.STRUCTURED},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                max_tokens=1000,
            )
            return parse_json_object(content)

        try:
            return await run_tiers(tiers_for(self.ai_config, "description"), _call, label="description")
        except TiersExhaustedError as exc:
            LOGGER.error("Description formatting failed: %s", exc)
            return {DESCRIPTION_FALLBACK_KEY: text}

    async def generate_metadata(self, name: str, description: str | None) -> dict[str, Any]:
        prompt = prompts.METADATA.format(name=name, description=description or "")

        async def _call(model: str) -> dict[str, Any]:
            content = await self.client.complete(
                model=model,
                messages=[
                    {"role": "system", "content": prompts.METADATA_SYSTEM},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.5,
                max_tokens=500,
            )
            return parse_json_object(content)

        try:
            return await run_tiers(tiers_for(self.ai_config, "metadata"), _call, label="metadata")
        except TiersExhaustedError as exc:
            LOGGER.error("Metadata generation failed: %s", exc)
            return {}
