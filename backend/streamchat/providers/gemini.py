"""Gemini Generative Language API adapter (user/model vocabulary)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx

from streamchat.core import MappingError, ProviderBadResponseError, get_logger
from streamchat.providers.base import (
    BaseProvider,
    ProviderCapabilities,
    ProviderRequest,
    ProviderType,
    RoleVocabulary,
)
from streamchat.providers.http_client import (
    create_http_client,
    iter_sse_data,
    open_stream,
    raise_for_status,
    raise_for_stream_status,
    request_with_retries,
)

if TYPE_CHECKING:
    from streamchat.services.attachments import PendingAttachment

logger = get_logger(__name__)


class GeminiProvider(BaseProvider):
    """
    Adapter for ``models/{model}:streamGenerateContent``.

    The request seeds the session with every message but the last one, then
    sends the last message as ``[attachment?, text]``. The system prompt goes
    in ``systemInstruction`` because the API has no system role.
    """

    provider_type = ProviderType.GEMINI
    vocabulary = RoleVocabulary.NATIVE

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: int,
        max_retries: int,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.display_name = "Gemini"
        self.model = model
        self.max_retries = max_retries
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["x-goog-api-key"] = api_key
        self.client = create_http_client(
            base_url=base_url,
            timeout_seconds=timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def healthcheck(self) -> bool:
        try:
            response = await request_with_retries(
                self.client, "GET", f"/models/{self.model}", max_retries=self.max_retries
            )
            raise_for_status(response)
            return True
        except Exception as exc:
            logger.warning(
                "Gemini healthcheck failed",
                data={"error": str(exc), "provider": self.provider_type.value},
            )
            return False

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(streaming=True, vision=True)

    def build_payload(
        self,
        request: ProviderRequest,
        attachment: PendingAttachment | None = None,
    ) -> dict[str, Any]:
        if not request.messages:
            raise MappingError("Nothing to send: request has no messages")
        *seed, latest = request.messages
        contents: list[dict[str, Any]] = [
            {"role": m.role, "parts": [{"text": m.content}]} for m in seed
        ]
        latest_parts: list[dict[str, Any]] = []
        if attachment is not None and attachment.is_ready:
            latest_parts.append(attachment.provider_part)
        latest_parts.append({"text": latest.content})
        contents.append({"role": latest.role, "parts": latest_parts})
        return {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": request.system_prompt}]},
        }

    async def stream(
        self,
        request: ProviderRequest,
        attachment: PendingAttachment | None = None,
    ) -> AsyncIterator[str]:
        """Yield the joined text of each streamed candidate chunk."""
        response = await open_stream(
            self.client,
            "POST",
            f"/models/{self.model}:streamGenerateContent",
            params={"alt": "sse"},
            json=self.build_payload(request, attachment),
            max_retries=self.max_retries,
        )
        try:
            await raise_for_stream_status(response)
            async for chunk in iter_sse_data(response):
                yield _chunk_text(chunk)
        finally:
            await response.aclose()


def _chunk_text(chunk: dict[str, Any]) -> str:
    """Equivalent of the SDK's ``chunk.text()``: concatenated text parts of the first candidate."""
    if "error" in chunk:
        raise ProviderBadResponseError(
            "Provider reported an error mid-stream", details={"error": chunk["error"]}
        )
    candidates = chunk.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if "text" in p)
