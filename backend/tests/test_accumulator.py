"""Tests for delta accumulation, final flush, and inactivity timeout."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from streamchat.core import ProviderStreamError, RateLimitError, StreamTimeoutError
from streamchat.services.accumulator import StreamAccumulator


class Recorder:
    def __init__(self) -> None:
        self.updates: list[tuple[str, bool]] = []

    def __call__(self, buffer: str, final: bool) -> None:
        self.updates.append((buffer, final))


class ScriptedStream:
    """Async iterator over a script of deltas and exceptions; tracks closing."""

    def __init__(self, script: list[str | Exception], hang_at_end: bool = False):
        self._script = list(script)
        self._hang_at_end = hang_at_end
        self.closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        await asyncio.sleep(0)
        if not self._script:
            if self._hang_at_end:
                await asyncio.Event().wait()
            raise StopAsyncIteration
        step = self._script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_accumulates_deltas_and_flushes_once() -> None:
    recorder = Recorder()
    stream = ScriptedStream(["Hel", "lo", "", " world"])
    accumulator = StreamAccumulator()

    answer = await accumulator.consume(stream, recorder)

    assert answer == "Hello world"
    assert recorder.updates == [
        ("Hel", False),
        ("Hello", False),
        ("Hello world", False),
        ("Hello world", True),
    ]
    assert accumulator.flush_count == 1
    assert accumulator.delta_count == 3
    assert stream.closed is True


@pytest.mark.asyncio
async def test_buffer_only_grows() -> None:
    recorder = Recorder()
    await StreamAccumulator().consume(ScriptedStream(["a", "b", "", "c", "d"]), recorder)

    buffers = [buffer for buffer, _ in recorder.updates]
    assert all(later.startswith(earlier) for earlier, later in zip(buffers, buffers[1:]))


@pytest.mark.asyncio
async def test_empty_stream_still_flushes() -> None:
    recorder = Recorder()

    answer = await StreamAccumulator().consume(ScriptedStream([]), recorder)

    assert answer == ""
    assert recorder.updates == [("", True)]


@pytest.mark.asyncio
async def test_mid_stream_error_keeps_partial_answer() -> None:
    recorder = Recorder()
    stream = ScriptedStream(["partial ", "answer", RateLimitError()])
    accumulator = StreamAccumulator()

    with pytest.raises(RateLimitError):
        await accumulator.consume(stream, recorder)

    assert accumulator.buffer == "partial answer"
    assert recorder.updates[-1] == ("partial answer", True)
    assert accumulator.flush_count == 1
    assert stream.closed is True


@pytest.mark.asyncio
async def test_unexpected_exception_is_wrapped() -> None:
    accumulator = StreamAccumulator()

    with pytest.raises(ProviderStreamError) as exc:
        await accumulator.consume(ScriptedStream(["x", ValueError("bad frame")]), Recorder())

    assert exc.value.details == {"reason": "bad frame"}
    assert accumulator.buffer == "x"


@pytest.mark.asyncio
async def test_inactivity_timeout_raises_stream_timeout() -> None:
    recorder = Recorder()
    stream = ScriptedStream(["slow"], hang_at_end=True)
    accumulator = StreamAccumulator(inactivity_timeout=0.05)

    with pytest.raises(StreamTimeoutError):
        await accumulator.consume(stream, recorder)

    assert accumulator.buffer == "slow"
    assert recorder.updates[-1] == ("slow", True)
    assert stream.closed is True


@pytest.mark.asyncio
async def test_cancellation_skips_final_flush_and_closes_stream() -> None:
    recorder = Recorder()
    stream = ScriptedStream(["first"], hang_at_end=True)
    accumulator = StreamAccumulator()

    task = asyncio.create_task(accumulator.consume(stream, recorder))
    while not recorder.updates:
        await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert recorder.updates == [("first", False)]
    assert accumulator.flush_count == 0
    assert stream.closed is True


@pytest.mark.asyncio
async def test_accumulator_is_single_use() -> None:
    accumulator = StreamAccumulator()
    await accumulator.consume(ScriptedStream(["a"]), Recorder())

    with pytest.raises(RuntimeError):
        await accumulator.consume(ScriptedStream(["b"]), Recorder())
