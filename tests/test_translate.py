import asyncio
import json

import pytest

from conftest import AI_CONFIG, FakeCompletionClient, echo_batch

from cartscout.ai import prompts
from cartscout.ai.translate import Translator, clean_translation, needs_translation, parse_batch_response
from cartscout.errors import MalformedResponseError, RemoteServiceError


def _failing(model, messages):
    raise RemoteServiceError(f"{model} unavailable")


def test_name_translation_uses_primary_model_and_cleans_output() -> None:
    client = FakeCompletionClient(lambda model, messages: '"قميص أسود"\n\n**Explanation: literal**')
    translator = Translator(client, AI_CONFIG)

    result = asyncio.run(translator.translate_text("黑色T恤", "name"))

    assert result == "قميص أسود"
    assert client.models() == ["big-model"]
    assert client.calls[0][1][0]["content"] == prompts.NAME


def test_every_model_failing_returns_the_source_text() -> None:
    client = FakeCompletionClient(_failing)
    translator = Translator(client, AI_CONFIG)

    result = asyncio.run(translator.translate_text("黑色T恤", "name"))

    assert result == "黑色T恤"
    assert client.models() == ["big-model", "small-model"]


def test_option_translation_retries_residual_source_script_then_falls_back() -> None:
    def responder(model, messages):
        return "أسود 黑" if model == "small-model" else "أسود"

    client = FakeCompletionClient(responder)
    result = asyncio.run(Translator(client, AI_CONFIG).translate_text("黑色", "option"))

    assert result == "أسود"
    assert client.models() == ["small-model"] * 3 + ["big-model"]


def test_text_already_in_target_script_is_not_sent() -> None:
    client = FakeCompletionClient(_failing)
    translator = Translator(client, AI_CONFIG)

    assert asyncio.run(translator.translate_text("قميص", "name")) == "قميص"
    assert asyncio.run(translator.translate_text("", "name")) == ""
    assert client.calls == []


def test_batch_keeps_length_and_passes_through_empty_and_translated_items() -> None:
    client = FakeCompletionClient(echo_batch)
    texts = ["黑色", "", "أحمر", "白色"]

    result = asyncio.run(Translator(client, AI_CONFIG).translate_batch(texts, "option"))

    assert len(result) == len(texts)
    assert result == ["ت-0", "", "أحمر", "ت-1"]
    assert json.loads(client.calls[0][1][-1]["content"]) == ["黑色", "白色"]


def test_batch_length_mismatch_falls_back_to_single_items() -> None:
    def responder(model, messages):
        if messages[0]["content"] == prompts.OPTION_BATCH:
            return json.dumps({"translations": ["واحد"]})
        return "أسود"

    client = FakeCompletionClient(responder)
    result = asyncio.run(Translator(client, AI_CONFIG).translate_batch(["黑色", "黑的"], "option"))

    assert result == ["أسود", "أسود"]
    batch_calls = [model for model, messages in client.calls if messages[0]["content"] == prompts.OPTION_BATCH]
    assert batch_calls == ["small-model"] * 3 + ["big-model"] * 3


def test_batch_total_failure_returns_originals() -> None:
    client = FakeCompletionClient(_failing)
    texts = ["好评", None, "质量很好"]

    result = asyncio.run(Translator(client, AI_CONFIG).translate_batch(texts, "review"))

    assert result == ["好评", "", "质量很好"]


def test_review_batch_starts_on_the_small_model() -> None:
    client = FakeCompletionClient(echo_batch)
    asyncio.run(Translator(client, AI_CONFIG).translate_batch(["很好"], "review"))
    assert client.models() == ["small-model"]
    assert client.calls[0][1][0]["content"] == prompts.REVIEW_BATCH


@pytest.mark.parametrize(
    "content, expected",
    [
        ('{"translations": ["أ", "ب"]}', ["أ", "ب"]),
        ('```json\n["أ", null]\n```', ["أ", ""]),
        ('{"items": ["أ"]}', ["أ"]),
    ],
)
def test_parse_batch_response_shapes(content: str, expected: list[str]) -> None:
    assert parse_batch_response(content) == expected


@pytest.mark.parametrize("content", ["not json", '{"translations": "أ"}', "42"])
def test_parse_batch_response_rejects_unusable_payloads(content: str) -> None:
    with pytest.raises(MalformedResponseError):
        parse_batch_response(content)


def test_clean_translation_strips_noise() -> None:
    assert clean_translation("- أسود -") == "أسود"
    assert clean_translation("'أحمر'\nNote: red") == "أحمر"
    assert clean_translation("```أبيض```") == "أبيض"
    assert clean_translation("أزرق синий") == "أزرق"


def test_needs_translation() -> None:
    assert needs_translation("黑色")
    assert not needs_translation("   ")
    assert not needs_translation("أسود")


@pytest.mark.parametrize("texts", [[], ["", None, "   "], ["أسود", "قميص"]])
def test_batch_with_nothing_to_translate_makes_no_call(texts) -> None:
    client = FakeCompletionClient(_failing)
    result = asyncio.run(Translator(client, AI_CONFIG).translate_batch(texts, "option"))

    assert result == [text if text is not None else "" for text in texts]
    assert client.calls == []
