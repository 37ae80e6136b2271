"""Tests for the chats API and committing turns to it over HTTP."""

from __future__ import annotations

import httpx
import pytest

from streamchat.core import ErrorCode
from streamchat.db import create_db_engine, create_session_factory, init_db
from streamchat.main import create_app
from streamchat.services.chat_api import ChatApiClient, InMemoryConversationCache
from streamchat.services.persistence import CompletedTurn, PersistenceGate
from streamchat.services.stream_state import StreamState


def create(client, headers, text: str = "Plan a weekend in Lisbon", model: str = "gpt-4o") -> str:
    response = client.post("/api/chats", json={"text": text, "model": model}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def test_health_reports_metrics(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "commits_total" in response.json()["metrics"]["counters"]


def test_create_and_fetch_chat(client, user_headers) -> None:
    chat_id = create(client, user_headers)

    response = client.get(f"/api/chats/{chat_id}", headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["_id"] == chat_id
    assert body["userId"] == "user-1"
    assert body["model"] == "gpt-4o"
    assert body["history"] == [{"role": "user", "parts": [{"text": "Plan a weekend in Lisbon"}], "img": None}]


def test_create_rejects_unknown_model(client, user_headers) -> None:
    response = client.post(
        "/api/chats", json={"text": "hi", "model": "unknown-id"}, headers=user_headers
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == ErrorCode.VALIDATION_ERROR.value


def test_requests_without_identity_are_rejected(client) -> None:
    response = client.get("/api/userchats")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == ErrorCode.UNAUTHORIZED.value


def test_chats_are_scoped_to_owner(client, user_headers) -> None:
    chat_id = create(client, user_headers)
    other = {"X-User-Id": "user-2"}

    assert client.get(f"/api/chats/{chat_id}", headers=other).status_code == 404
    response = client.put(f"/api/chats/{chat_id}", json={"answer": "x"}, headers=other)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == ErrorCode.NOT_FOUND.value


def test_list_user_chats(client, user_headers) -> None:
    first = create(client, user_headers, text="first")
    second = create(client, user_headers, text="second")
    create(client, {"X-User-Id": "user-2"}, text="not mine")

    response = client.get("/api/userchats", headers=user_headers)

    assert response.status_code == 200
    assert {c["_id"] for c in response.json()} == {first, second}
    assert all("createdAt" in c for c in response.json())


def test_append_turn_with_question_and_image(client, user_headers) -> None:
    chat_id = create(client, user_headers)

    response = client.put(
        f"/api/chats/{chat_id}",
        json={"question": "what is this?", "answer": "a tram", "img": "/uploads/tram.png"},
        headers={**user_headers, "Idempotency-Key": f"{chat_id}:1"},
    )

    assert response.status_code == 200
    assert response.json() == {"id": chat_id}
    history = client.get(f"/api/chats/{chat_id}", headers=user_headers).json()["history"]
    assert history[1] == {
        "role": "user",
        "parts": [{"text": "what is this?"}],
        "img": "/uploads/tram.png",
    }
    assert history[2] == {"role": "model", "parts": [{"text": "a tram"}], "img": None}


def test_replayed_commit_is_not_applied_twice(client, user_headers) -> None:
    chat_id = create(client, user_headers)
    headers = {**user_headers, "Idempotency-Key": f"{chat_id}:1"}

    first = client.put(f"/api/chats/{chat_id}", json={"answer": "hello"}, headers=headers)
    second = client.put(f"/api/chats/{chat_id}", json={"answer": "hello"}, headers=headers)

    assert first.status_code == 200
    assert "Idempotent-Replayed" not in first.headers
    assert second.status_code == 200
    assert second.headers["Idempotent-Replayed"] == "true"
    history = client.get(f"/api/chats/{chat_id}", headers=user_headers).json()["history"]
    assert len(history) == 2


def test_reused_key_with_different_turn_conflicts(client, user_headers) -> None:
    chat_id = create(client, user_headers)
    headers = {**user_headers, "Idempotency-Key": f"{chat_id}:1"}

    first = client.put(
        f"/api/chats/{chat_id}", json={"question": "question one", "answer": "a"}, headers=headers
    )
    second = client.put(
        f"/api/chats/{chat_id}", json={"question": "question two", "answer": "b"}, headers=headers
    )

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["error"]["code"] == ErrorCode.IDEMPOTENCY_CONFLICT.value
    assert "Idempotent-Replayed" not in second.headers
    history = client.get(f"/api/chats/{chat_id}", headers=user_headers).json()["history"]
    assert [turn["parts"][0]["text"] for turn in history] == [
        "Plan a weekend in Lisbon",
        "question one",
        "a",
    ]


def test_append_requires_answer(client, user_headers) -> None:
    chat_id = create(client, user_headers)

    response = client.put(f"/api/chats/{chat_id}", json={"question": "q"}, headers=user_headers)

    assert response.status_code == 422


def test_request_id_is_echoed(client, user_headers) -> None:
    response = client.get("/api/userchats", headers={**user_headers, "X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"


@pytest.mark.asyncio
async def test_gate_retries_are_deduplicated_by_backend(settings) -> None:
    """Two gates committing the same turn write one history entry."""
    app = create_app(settings)
    engine = create_db_engine(settings)
    init_db(engine)
    app.state.session_factory = create_session_factory(engine)
    transport = httpx.ASGITransport(app=app)

    api = ChatApiClient("http://chats.test", "user-1", transport=transport)
    chat_id = await api.create_conversation("hello", "gemini-flash-1.5")
    turn = CompletedTurn(conversation_id=chat_id, sequence=1, answer="Hi! How can I help?")

    first = await PersistenceGate(api, InMemoryConversationCache()).commit(turn, StreamState())
    second = await PersistenceGate(api, InMemoryConversationCache()).commit(turn, StreamState())

    conversation = await api.get_conversation(chat_id)
    assert first.idempotency_key == second.idempotency_key
    assert [t.role.value for t in conversation.history] == ["user", "model"]
    assert conversation.history[1].first_text == "Hi! How can I help?"
    await api.aclose()
    engine.dispose()
