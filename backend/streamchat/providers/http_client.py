"""
HTTP plumbing shared by the provider adapters.

Builds clients, retries connection failures, reads server-sent events and
maps HTTP failures onto ProviderStreamError subclasses, so adapters never
leak transport exceptions.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from streamchat.core import (
    ModelNotFoundError,
    ProviderAuthError,
    ProviderBadResponseError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    get_logger,
    turn_id_ctx,
)

logger = get_logger(__name__)

# Failures where nothing reached the provider, or nothing came back.
_RETRYABLE = (httpx.TransportError,)


def create_http_client(
    base_url: str,
    timeout_seconds: int,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient for one provider.

    Reads are unbounded here: a streaming reply may pause between deltas, and
    the stream accumulator enforces the per-delta inactivity timeout.
    """
    timeout = httpx.Timeout(timeout_seconds, read=None)
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        timeout=timeout,
        headers=headers or {},
        transport=transport,
    )


async def _send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int,
    stream: bool,
    **kwargs: Any,
) -> httpx.Response:
    headers = dict(kwargs.pop("headers", None) or {})
    turn_id = turn_id_ctx.get()
    if turn_id:
        headers.setdefault("X-Request-ID", turn_id)

    attempt = 0
    while True:
        request = client.build_request(method, url, headers=headers, **kwargs)
        try:
            return await client.send(request, stream=stream)
        except _RETRYABLE as exc:
            if attempt >= max_retries:
                raise ProviderUnavailableError(details={"reason": str(exc)}) from exc
        except httpx.HTTPError as exc:
            raise ProviderError("Provider request failed", details={"reason": str(exc)}) from exc
        attempt += 1
        logger.warning(
            "Retrying provider request",
            data={"url": url, "attempt": attempt, "max_retries": max_retries},
        )
        await asyncio.sleep(min(0.1 * attempt, 1.0))


async def request_with_retries(
    client: httpx.AsyncClient, method: str, url: str, *, max_retries: int, **kwargs: Any
) -> httpx.Response:
    """Send a buffered request; transport failures are retried, HTTP statuses are not."""
    return await _send(client, method, url, max_retries=max_retries, stream=False, **kwargs)


async def open_stream(
    client: httpx.AsyncClient, method: str, url: str, *, max_retries: int, **kwargs: Any
) -> httpx.Response:
    """
    Open a streamed request with the same retry rules.

    The caller owns the response and must ``aclose()`` it.
    """
    return await _send(client, method, url, max_retries=max_retries, stream=True, **kwargs)


def raise_for_status(response: httpx.Response) -> None:
    """Raise the ProviderStreamError matching an error status. Streamed bodies must be read first."""
    status = response.status_code
    if status < 400:
        return

    details = _error_details(response)
    if status in (401, 403):
        raise ProviderAuthError(details=details, status_code=status)
    if status == 404:
        raise ModelNotFoundError(details=details)
    if status == 429:
        raise RateLimitError(details=details)
    if status >= 500:
        raise ProviderUnavailableError(details=details)
    raise ProviderError(details=details)


async def raise_for_stream_status(response: httpx.Response) -> None:
    if response.status_code >= 400:
        await response.aread()
        raise_for_status(response)


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[Any]:
    """
    Yield the decoded JSON of each ``data:`` line.

    Stops at ``[DONE]`` or end of body. Comments, ``event:`` and ``id:``
    lines are skipped.
    """
    try:
        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if data == "[DONE]":
                return
            try:
                yield json.loads(data)
            except json.JSONDecodeError as exc:
                raise ProviderBadResponseError(details={"body": data[:300]}) from exc
    except httpx.HTTPError as exc:
        raise ProviderUnavailableError(
            "Provider connection lost", details={"reason": str(exc)}
        ) from exc


def _error_details(response: httpx.Response) -> dict[str, Any]:
    """Status, request URL and the start of the body; never headers."""
    try:
        body = response.text[:300]
    except httpx.ResponseNotRead:
        body = ""
    return {"status": response.status_code, "body": body, "url": str(response.request.url)}
