"""Tests for the chats API client and the persistence gate."""

from __future__ import annotations

import json

import httpx
import pytest

from streamchat.conversation import Conversation
from streamchat.core import ErrorCode, NotFoundError, PersistenceError, turn_id_ctx
from streamchat.services.chat_api import ChatApiClient, InMemoryConversationCache
from streamchat.services.persistence import CompletedTurn, PersistenceGate
from streamchat.services.stream_state import StreamState


class ChatsBackend:
    """Records PUTs; replies with a canned status and body."""

    def __init__(self, status: int = 200, body: object | None = None):
        self.status = status
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status >= 400:
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(200, json={"id": request.url.path.rsplit("/", 1)[-1]})


def make_gate(backend: ChatsBackend) -> tuple[PersistenceGate, InMemoryConversationCache]:
    cache = InMemoryConversationCache()
    api = ChatApiClient(
        base_url="http://chats.test",
        user_id="user-1",
        cache=cache,
        transport=httpx.MockTransport(backend),
    )
    return PersistenceGate(api, cache), cache


def streaming_state() -> StreamState:
    return StreamState(
        pending_question_text="What is 2+2?",
        accumulated_answer_text="4",
        is_streaming=True,
        image_path="/uploads/sum.png",
    )


@pytest.mark.asyncio
async def test_commit_sends_turn_and_resets_state() -> None:
    backend = ChatsBackend()
    gate, cache = make_gate(backend)
    state = streaming_state()
    turn = CompletedTurn(
        conversation_id="c1",
        sequence=4,
        question="What is 2+2?",
        answer="4",
        attachment_ref="/uploads/sum.png",
    )

    ack = await gate.commit(turn, state)

    request = backend.requests[0]
    assert request.method == "PUT"
    assert request.url.path == "/api/chats/c1"
    assert request.headers["Idempotency-Key"] == "c1:4"
    assert request.headers["X-User-Id"] == "user-1"
    assert json.loads(request.content) == {
        "answer": "4",
        "question": "What is 2+2?",
        "img": "/uploads/sum.png",
    }
    assert ack.idempotency_key == "c1:4"
    assert ack.deduplicated is False
    assert cache.invalidations == ["c1"]
    assert state == StreamState()
    await gate.api.aclose()


@pytest.mark.asyncio
async def test_bootstrap_commit_omits_question() -> None:
    backend = ChatsBackend()
    gate, _ = make_gate(backend)

    await gate.commit(CompletedTurn(conversation_id="c1", sequence=1, answer="hello"), StreamState())

    assert json.loads(backend.requests[0].content) == {"answer": "hello"}
    await gate.api.aclose()


@pytest.mark.asyncio
async def test_failed_commit_keeps_texts_and_does_not_invalidate() -> None:
    backend = ChatsBackend(
        status=500, body={"error": {"code": "E9000", "message": "disk full"}}
    )
    gate, cache = make_gate(backend)
    state = streaming_state()
    turn = CompletedTurn(conversation_id="c1", sequence=2, question="What is 2+2?", answer="4")

    with pytest.raises(PersistenceError) as exc:
        await gate.commit(turn, state)

    assert exc.value.code == ErrorCode.PERSISTENCE_FAILED
    assert exc.value.message == "disk full"
    assert exc.value.details == {"error": {"code": "E9000", "message": "disk full"}}
    assert state.is_streaming is False
    assert state.pending_question_text == "What is 2+2?"
    assert state.accumulated_answer_text == "4"
    assert state.error == "disk full"
    assert cache.invalidations == []
    await gate.api.aclose()


@pytest.mark.asyncio
async def test_unreachable_service_is_persistence_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    cache = InMemoryConversationCache()
    api = ChatApiClient("http://chats.test", "user-1", transport=httpx.MockTransport(handler))
    gate = PersistenceGate(api, cache)

    with pytest.raises(PersistenceError):
        await gate.commit(CompletedTurn("c1", 1, answer="x"), StreamState())
    await api.aclose()


@pytest.mark.asyncio
async def test_repeated_commit_of_same_turn_is_deduplicated() -> None:
    backend = ChatsBackend()
    gate, cache = make_gate(backend)
    turn = CompletedTurn(conversation_id="c1", sequence=3, question="q", answer="a")

    first = await gate.commit(turn, StreamState())
    second = await gate.commit(turn, StreamState())

    assert len(backend.requests) == 1
    assert second.deduplicated is True
    assert second.idempotency_key == first.idempotency_key
    assert cache.invalidations == ["c1"]
    await gate.api.aclose()


@pytest.mark.asyncio
async def test_turn_id_is_forwarded_as_request_id() -> None:
    backend = ChatsBackend()
    gate, _ = make_gate(backend)
    token = turn_id_ctx.set("turn-123")
    try:
        await gate.commit(CompletedTurn("c1", 1, answer="a"), StreamState())
    finally:
        turn_id_ctx.reset(token)

    assert backend.requests[0].headers["X-Request-ID"] == "turn-123"
    await gate.api.aclose()


@pytest.mark.asyncio
async def test_get_conversation_reads_through_cache() -> None:
    calls: list[httpx.Request] = []
    body = {
        "_id": "c1",
        "userId": "user-1",
        "history": [{"role": "user", "parts": [{"text": "hi"}]}],
        "model": "gpt-4o",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=body)

    cache = InMemoryConversationCache()
    api = ChatApiClient("http://chats.test", "user-1", cache=cache, transport=httpx.MockTransport(handler))

    first = await api.get_conversation("c1")
    second = await api.get_conversation("c1")

    assert isinstance(first, Conversation)
    assert first.history[0].first_text == "hi"
    assert second is first
    assert len(calls) == 1

    cache.invalidate("c1")
    await api.get_conversation("c1")
    assert len(calls) == 2
    await api.aclose()


@pytest.mark.asyncio
async def test_get_missing_conversation_raises_not_found() -> None:
    api = ChatApiClient(
        "http://chats.test",
        "user-1",
        transport=httpx.MockTransport(lambda request: httpx.Response(404, json={})),
    )

    with pytest.raises(NotFoundError):
        await api.get_conversation("missing")
    await api.aclose()
