"""Thin async wrapper over an OpenAI-compatible completion service."""

from __future__ import annotations

import asyncio
import os
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from cartscout.errors import CompletionTimeoutError, MalformedResponseError, RemoteServiceError
from cartscout.logging_config import get_logger

LOGGER = get_logger(__name__)

API_KEY_ENV_VARS = ("CARTSCOUT_AI_API_KEY", "DEEPINFRA_API_KEY")


def resolve_api_key() -> str | None:
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value and value.strip():
            return value.strip()
    return None


class CompletionClient:
    """Chat completions and embeddings with a client-side timeout.

    The client-side timeout is kept shorter than the SDK request timeout so a
    hung request surfaces as ``CompletionTimeoutError`` instead of an SDK
    retry loop.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str | None = None,
        request_timeout_s: float = 120.0,
        client_timeout_s: float = 110.0,
        client: Any | None = None,
    ) -> None:
        self.client_timeout_s = client_timeout_s
        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=request_timeout_s,
                max_retries=0,
            )
        else:
            LOGGER.warning("No completion API key configured; text will be kept untranslated")
            self._client = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "CompletionClient":
        ai = config.get("ai", {})
        return cls(
            api_key=resolve_api_key(),
            base_url=ai.get("base_url"),
            request_timeout_s=float(ai.get("request_timeout_s", 120)),
            client_timeout_s=float(ai.get("client_timeout_s", 110)),
        )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        *,
        model: str,
        messages: list[dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        if self._client is None:
            raise RemoteServiceError("completion service is not configured")

        kwargs: dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self.client_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise CompletionTimeoutError(f"{model} did not answer within {self.client_timeout_s:.0f}s") from exc
        except OpenAIError as exc:
            raise RemoteServiceError(f"{model}: {exc}") from exc

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise MalformedResponseError(f"{model} returned no choices") from exc
        if not content or not content.strip():
            raise MalformedResponseError(f"{model} returned an empty completion")
        return content.strip()

    async def embed(self, text: str, *, model: str, dimensions: int, timeout_s: float) -> list[float]:
        """Return the embedding of *text*, truncated to *dimensions* values."""

        if self._client is None:
            raise RemoteServiceError("embedding service is not configured")
        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(model=model, input=text, encoding_format="float"),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise CompletionTimeoutError(f"embedding did not answer within {timeout_s:.0f}s") from exc
        except OpenAIError as exc:
            raise RemoteServiceError(f"embedding: {exc}") from exc

        try:
            vector = list(response.data[0].embedding)
        except (AttributeError, IndexError, TypeError) as exc:
            raise MalformedResponseError("embedding response carried no vector") from exc
        return [float(value) for value in vector[:dimensions]]
