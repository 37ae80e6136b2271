"""Accumulate streamed text deltas into the running answer."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable

from streamchat.core import (
    AppError,
    ProviderStreamError,
    StreamTimeoutError,
    get_logger,
    metrics,
)

logger = get_logger(__name__)

# (buffer snapshot, is_final_flush)
UpdateCallback = Callable[[str, bool], None]


class StreamAccumulator:
    """
    Consumes one adapter stream. Not reusable.

    The buffer only ever grows: each non-empty delta is appended and the
    callback runs before the next delta is awaited, so updates observe deltas
    in arrival order. When the stream ends, naturally or with an error, the
    callback runs exactly once more with ``final=True``. Cancellation skips
    the final flush.
    """

    def __init__(self, inactivity_timeout: float | None = None):
        self.inactivity_timeout = inactivity_timeout
        self.buffer = ""
        self.delta_count = 0
        self.flush_count = 0
        self.finished = False

    async def consume(self, deltas: AsyncIterator[str], on_update: UpdateCallback) -> str:
        """Drain ``deltas`` and return the final text.

        Raises:
            ProviderStreamError: on provider failure or inactivity timeout;
                ``self.buffer`` keeps the partial answer.
        """
        if self.finished:
            raise RuntimeError("StreamAccumulator already consumed a stream")

        iterator = deltas.__aiter__()
        started = time.perf_counter()
        metrics.adjust_gauge("active_streams", 1)
        try:
            try:
                while True:
                    delta = await self._next(iterator)
                    if delta is None:
                        break
                    if not delta:
                        continue
                    self.buffer += delta
                    self.delta_count += 1
                    metrics.increment("deltas_received")
                    on_update(self.buffer, False)
            except AppError:
                self._flush(on_update)
                raise
            self._flush(on_update)
            return self.buffer
        finally:
            self.finished = True
            metrics.adjust_gauge("active_streams", -1)
            metrics.observe("stream_duration_seconds", time.perf_counter() - started)
            await _close(iterator)

    async def _next(self, iterator: AsyncIterator[str]) -> str | None:
        try:
            if self.inactivity_timeout:
                return await asyncio.wait_for(iterator.__anext__(), timeout=self.inactivity_timeout)
            return await iterator.__anext__()
        except StopAsyncIteration:
            return None
        except TimeoutError:
            metrics.increment("stream_timeouts")
            logger.warning(
                "Provider stream idle for too long; cancelling",
                data={"timeout_seconds": self.inactivity_timeout, "chars": len(self.buffer)},
            )
            raise StreamTimeoutError(self.inactivity_timeout) from None
        except AppError:
            raise
        except Exception as exc:
            raise ProviderStreamError(
                "Provider stream failed", details={"reason": str(exc)}
            ) from exc

    def _flush(self, on_update: UpdateCallback) -> None:
        self.flush_count += 1
        on_update(self.buffer, True)


async def _close(iterator: AsyncIterator[str]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()
