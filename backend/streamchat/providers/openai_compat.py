"""OpenAI-compatible chat completions adapter (system/user/assistant vocabulary)."""

from __future__ import annotations

import warnings
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx

from streamchat.core import AttachmentUnsupportedWarning, get_logger
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


class OpenAICompatProvider(BaseProvider):
    """Adapter for ``/chat/completions`` streaming endpoints."""

    provider_type = ProviderType.OPENAI_COMPAT
    vocabulary = RoleVocabulary.ASSISTANT

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: int,
        max_retries: int,
        api_key: str | None = None,
        display_name: str = "OpenAI",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.display_name = display_name
        self.model = model
        self.max_retries = max_retries
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
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
                self.client, "GET", "/models", max_retries=self.max_retries
            )
            raise_for_status(response)
            return True
        except Exception as exc:
            logger.warning(
                "OpenAI-compatible healthcheck failed",
                data={"error": str(exc), "provider": self.provider_type.value},
            )
            return False

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(streaming=True, vision=False)

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        messages = [{"role": "system", "content": request.system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in request.messages)
        return {"model": self.model, "messages": messages, "stream": True}

    async def stream(
        self,
        request: ProviderRequest,
        attachment: PendingAttachment | None = None,
    ) -> AsyncIterator[str]:
        """Stream ``choices[0].delta.content`` fragments; empty fragments pass through."""
        if attachment is not None and attachment.is_ready:
            logger.warning(
                "Attachment not sent: provider has no image input",
                data={"provider": self.provider_type.value, "file_path": attachment.file_path},
            )
            warnings.warn(
                f"{self.display_name} does not accept image attachments; sending text only",
                AttachmentUnsupportedWarning,
                stacklevel=1,
            )

        response = await open_stream(
            self.client,
            "POST",
            "/chat/completions",
            json=self.build_payload(request),
            max_retries=self.max_retries,
        )
        try:
            await raise_for_stream_status(response)
            async for chunk in iter_sse_data(response):
                # Content-filter preambles arrive with an empty choices list.
                choices = chunk.get("choices") or []
                if not choices:
                    continue
                delta = choices[0].get("delta") or {}
                yield delta.get("content") or ""
        finally:
            await response.aclose()
