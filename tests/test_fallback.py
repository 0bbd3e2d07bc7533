import asyncio
from types import SimpleNamespace

import pytest

from conftest import AI_CONFIG

from cartscout.ai.client import CompletionClient, resolve_api_key
from cartscout.ai.fallback import Tier, run_tiers, tiers_for
from cartscout.errors import (
    CompletionTimeoutError,
    MalformedResponseError,
    RemoteServiceError,
    TiersExhaustedError,
)


def test_tier_order_per_context() -> None:
    assert tiers_for(AI_CONFIG, "name") == [Tier("big-model", 1), Tier("small-model", 1)]
    assert tiers_for(AI_CONFIG, "metadata") == [Tier("big-model", 1), Tier("small-model", 1)]
    assert tiers_for(AI_CONFIG, "option") == [Tier("small-model", 3), Tier("big-model", 3)]
    assert tiers_for(AI_CONFIG, "review") == [Tier("small-model", 1), Tier("big-model", 1)]


def test_tiers_skip_unconfigured_models() -> None:
    assert tiers_for({"primary_model": "only"}, "option") == [Tier("only", 3)]


def test_run_tiers_moves_to_next_tier_after_attempts() -> None:
    calls = []

    async def call(model: str) -> str:
        calls.append(model)
        if model == "a":
            raise MalformedResponseError("bad")
        return f"ok:{model}"

    result = asyncio.run(run_tiers([Tier("a", 2), Tier("b", 2)], call, label="test"))

    assert result == "ok:b"
    assert calls == ["a", "a", "b"]


def test_run_tiers_raises_when_every_tier_fails() -> None:
    async def call(model: str) -> str:
        raise RemoteServiceError(model)

    with pytest.raises(TiersExhaustedError):
        asyncio.run(run_tiers([Tier("a"), Tier("b")], call, label="test"))


def test_run_tiers_does_not_swallow_programming_errors() -> None:
    async def call(model: str) -> str:
        raise KeyError(model)

    with pytest.raises(KeyError):
        asyncio.run(run_tiers([Tier("a", 3)], call, label="test"))


def _openai_like(create=None, embed=None):
    return SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create)),
        embeddings=SimpleNamespace(create=embed),
    )


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_client_without_key_is_disabled() -> None:
    client = CompletionClient(api_key=None)

    assert client.enabled is False
    with pytest.raises(RemoteServiceError):
        asyncio.run(client.complete(model="m", messages=[]))
    with pytest.raises(RemoteServiceError):
        asyncio.run(client.embed("x", model="e", dimensions=3, timeout_s=1))


def test_api_key_comes_from_environment(monkeypatch) -> None:
    monkeypatch.delenv("CARTSCOUT_AI_API_KEY", raising=False)
    monkeypatch.setenv("DEEPINFRA_API_KEY", " fallback-key ")
    assert resolve_api_key() == "fallback-key"

    monkeypatch.setenv("CARTSCOUT_AI_API_KEY", "primary-key")
    assert resolve_api_key() == "primary-key"


def test_complete_returns_stripped_content_and_passes_json_mode() -> None:
    seen = {}

    async def create(**kwargs):
        seen.update(kwargs)
        return _completion("  {\"a\": 1}  ")

    client = CompletionClient(api_key=None, client=_openai_like(create=create))
    result = asyncio.run(client.complete(model="m", messages=[{"role": "user", "content": "x"}], json_mode=True))

    assert result == '{"a": 1}'
    assert seen["response_format"] == {"type": "json_object"}
    assert seen["model"] == "m"


def test_empty_completion_is_malformed() -> None:
    async def create(**kwargs):
        return _completion("   ")

    client = CompletionClient(api_key=None, client=_openai_like(create=create))
    with pytest.raises(MalformedResponseError):
        asyncio.run(client.complete(model="m", messages=[]))


def test_client_side_timeout() -> None:
    async def create(**kwargs):
        await asyncio.sleep(1)
        return _completion("late")

    client = CompletionClient(api_key=None, client_timeout_s=0.01, client=_openai_like(create=create))
    with pytest.raises(CompletionTimeoutError):
        asyncio.run(client.complete(model="m", messages=[]))


def test_embedding_is_truncated_to_dimensions() -> None:
    async def embed(**kwargs):
        return SimpleNamespace(data=[SimpleNamespace(embedding=[1, 2, 3, 4, 5])])

    client = CompletionClient(api_key=None, client=_openai_like(embed=embed))
    assert asyncio.run(client.embed("x", model="e", dimensions=3, timeout_s=1)) == [1.0, 2.0, 3.0]
