"""Tests for mapping persisted history onto provider requests."""

import pytest

from streamchat.conversation import ConversationTurn, Role, TextPart
from streamchat.core import MappingError, UnsupportedModelError
from streamchat.providers import ModelId, ProviderMessage
from streamchat.services.history_mapper import DEFAULT_SYSTEM_PROMPT, HistoryMapper


def turn(role: str, *texts: str) -> ConversationTurn:
    return ConversationTurn(role=Role(role), parts=tuple(TextPart(text=t) for t in texts))


def test_single_user_turn_gets_default_system_prompt() -> None:
    request = HistoryMapper().to_provider_request([turn("user", "hi")], None, "gpt-4o")

    assert request.model is ModelId.GPT_4O
    assert request.system_prompt == "You are a helpful assistant."
    assert request.messages == [ProviderMessage(role="user", content="hi")]


def test_openai_payload_starts_with_system_message() -> None:
    from streamchat.providers import OpenAICompatProvider

    request = HistoryMapper().to_provider_request([turn("user", "hi")], None, "gpt-4o")
    provider = OpenAICompatProvider(
        base_url="http://openai.test", model="gpt-4o", timeout=5, max_retries=0
    )

    assert provider.build_payload(request)["messages"] == [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "hi"},
    ]


def test_preserves_order_and_uses_first_part_only() -> None:
    history = [
        turn("user", "first question", "ignored"),
        turn("model", "first answer"),
        turn("user", "second question"),
        turn("assistant", "second answer", "also ignored"),
    ]

    request = HistoryMapper().to_provider_request(history, "third question", "gpt-4o")

    assert [(m.role, m.content) for m in request.messages] == [
        ("user", "first question"),
        ("assistant", "first answer"),
        ("user", "second question"),
        ("assistant", "second answer"),
        ("user", "third question"),
    ]


def test_native_vocabulary_keeps_model_role() -> None:
    history = [turn("user", "q"), turn("model", "a"), turn("assistant", "b")]

    request = HistoryMapper().to_provider_request(history, "next", "gemini-flash-1.5")

    assert [m.role for m in request.messages] == ["user", "model", "model", "user"]


def test_leading_system_turn_becomes_system_prompt() -> None:
    history = [turn("system", "You are a pirate."), turn("user", "hello")]

    request = HistoryMapper().to_provider_request(history, None, "gpt-4o")

    assert request.system_prompt == "You are a pirate."
    assert request.messages == [ProviderMessage(role="user", content="hello")]


def test_configured_default_prompt() -> None:
    request = HistoryMapper("Be brief.").to_provider_request([turn("user", "x")], None, "gpt-4o")
    assert request.system_prompt == "Be brief."
    assert DEFAULT_SYSTEM_PROMPT == "You are a helpful assistant."


def test_replay_without_new_text_sends_only_history() -> None:
    history = [turn("user", "opening message")]

    request = HistoryMapper().to_provider_request(history, "", "gemini-flash-1.5")

    assert request.messages == [ProviderMessage(role="user", content="opening message")]


def test_turn_without_parts_is_rejected() -> None:
    history = [turn("user", "ok"), ConversationTurn(role=Role.MODEL, parts=())]

    with pytest.raises(MappingError) as exc:
        HistoryMapper().to_provider_request(history, "more", "gpt-4o")

    assert exc.value.details == {"turn_index": 1, "role": "model"}


def test_empty_history_without_text_is_rejected() -> None:
    with pytest.raises(MappingError):
        HistoryMapper().to_provider_request([], None, "gpt-4o")


def test_unknown_model_is_rejected() -> None:
    with pytest.raises(UnsupportedModelError):
        HistoryMapper().to_provider_request([turn("user", "hi")], None, "unknown-id")


def test_history_images_are_referenced_not_sent() -> None:
    history = [
        ConversationTurn(role=Role.USER, parts=(TextPart(text="what is this?"),), img="/u/cat.png"),
        turn("model", "a cat"),
    ]

    request = HistoryMapper().to_provider_request(history, "thanks", "gemini-flash-1.5")

    assert request.metadata == {"history_turns": 2, "history_images": ["/u/cat.png"]}
    assert all("cat.png" not in m.content for m in request.messages)
