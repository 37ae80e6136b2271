"""HTTP client for the chats API and the cached conversation view it feeds."""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from streamchat.config import Settings
from streamchat.conversation import Conversation
from streamchat.core import NotFoundError, PersistenceError, turn_id_ctx


class ConversationCache(Protocol):
    """Read cache for conversations, invalidated after every saved turn."""

    def get(self, conversation_id: str) -> Conversation | None: ...

    def put(self, conversation: Conversation) -> None: ...

    def invalidate(self, conversation_id: str) -> None: ...


class InMemoryConversationCache:
    def __init__(self) -> None:
        self._entries: dict[str, Conversation] = {}
        self.invalidations: list[str] = []

    def get(self, conversation_id: str) -> Conversation | None:
        return self._entries.get(conversation_id)

    def put(self, conversation: Conversation) -> None:
        self._entries[conversation.id] = conversation

    def invalidate(self, conversation_id: str) -> None:
        self._entries.pop(conversation_id, None)
        self.invalidations.append(conversation_id)


class ChatApiClient:
    """
    Talks to ``/api/chats`` on behalf of an already authenticated user.

    The identity gateway's header is forwarded as-is; this client never
    authenticates on its own.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        identity_header: str = "X-User-Id",
        cache: ConversationCache | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cache = cache
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={identity_header: user_id},
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        user_id: str,
        cache: ConversationCache | None = None,
    ) -> ChatApiClient:
        return cls(
            base_url=settings.chat_api_base_url,
            user_id=user_id,
            identity_header=settings.identity_header,
            cache=cache,
            timeout_seconds=settings.provider_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def get_conversation(self, conversation_id: str) -> Conversation:
        if self.cache is not None:
            cached = self.cache.get(conversation_id)
            if cached is not None:
                return cached
        response = await self.client.get(f"/api/chats/{conversation_id}")
        if response.status_code == 404:
            raise NotFoundError("Conversation not found")
        response.raise_for_status()
        conversation = Conversation.model_validate(response.json())
        if self.cache is not None:
            self.cache.put(conversation)
        return conversation

    async def create_conversation(self, text: str, model: str) -> str:
        response = await self.client.post("/api/chats", json={"text": text, "model": model})
        response.raise_for_status()
        return response.json()["id"]

    async def append_turn(
        self,
        conversation_id: str,
        *,
        answer: str,
        question: str | None = None,
        img: str | None = None,
        idempotency_key: str,
    ) -> str:
        """``PUT /api/chats/{id}``. Returns the conversation id on success.

        Raises:
            PersistenceError: carrying the API's error payload verbatim.
        """
        body: dict[str, Any] = {"answer": answer}
        if question:
            body["question"] = question
        if img:
            body["img"] = img
        headers = {"Idempotency-Key": idempotency_key}
        turn_id = turn_id_ctx.get()
        if turn_id:
            headers["X-Request-ID"] = turn_id

        try:
            response = await self.client.put(
                f"/api/chats/{conversation_id}", json=body, headers=headers
            )
        except httpx.HTTPError as exc:
            raise PersistenceError(
                "Could not reach the chat service", details={"reason": str(exc)}
            ) from exc

        if response.status_code >= 400:
            payload = _error_payload(response)
            error = payload.get("error")
            message = error.get("message") if isinstance(error, dict) else error
            message = message if isinstance(message, str) and message else "Failed to save chat"
            raise PersistenceError(message, details=payload)

        data = response.json()
        return data.get("id", conversation_id)


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"status": response.status_code, "body": response.text[:300]}
    if isinstance(payload, dict):
        return payload
    return {"status": response.status_code, "body": payload}
