"""
Byte pacer for real-time playback emulation.

Listeners must receive audio at the speed it plays back, not at the speed
the disk (or the mixer) can produce it. The pacer sits between the current
upstream producer and the broadcaster and releases bytes in bounded chunks,
sleeping out the remainder of each interval.

Pacing model:
    chunk_size = rate * interval
    Each release moves the next deadline forward by len(chunk) / rate.
    If the upstream was slow and the deadline is already in the past, the
    deadline restarts from "now" instead of bursting to catch up. Over any
    window the pacer therefore never releases more than rate * window bytes
    plus one chunk of granularity.

Termination:
    terminate() is the only cancellation primitive of the pipeline. It stops
    pulling from the upstream, flushes whatever is already buffered and ends
    the output. It does not cancel an upstream read that is in flight; the
    session closes the upstream itself when it needs that read to return.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import Protocol

logger = logging.getLogger(__name__)

# Default pacing granularity in seconds
PACING_INTERVAL_SECONDS = 0.1


class Upstream(Protocol):
    """A sequential byte producer feeding a pacer."""

    async def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes, or b"" once the producer is exhausted."""
        ...

    async def aclose(self) -> None:
        """Release the producer's resources. Must be idempotent."""
        ...


class BytePacer:
    """
    Releases bytes from an upstream at a fixed rate.

    Attributes:
        rate: Target throughput in bytes per second.
        interval: Pacing granularity in seconds.
        chunk_size: Maximum bytes released per interval.
        bytes_released: Total bytes handed downstream so far.
    """

    def __init__(self, rate: int, *, interval: float = PACING_INTERVAL_SECONDS) -> None:
        if rate <= 0:
            raise ValueError(f"Pacing rate must be positive, got {rate}")
        if interval <= 0:
            raise ValueError(f"Pacing interval must be positive, got {interval}")

        self.rate = rate
        self.interval = interval
        self.chunk_size = max(1, int(rate * interval))
        self.bytes_released = 0

        self._terminated = False
        self._finished = False
        self._wakeup = asyncio.Event()

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def finished(self) -> bool:
        """True once the output stream has ended."""
        return self._finished

    def terminate(self) -> None:
        """Stop pulling from the upstream, flush buffered bytes and end the output."""
        if self._terminated:
            return
        self._terminated = True
        self._wakeup.set()
        logger.debug("Pacer terminated after %d bytes", self.bytes_released)

    async def _sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless terminate() is called first."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), timeout=delay)

    async def stream(self, upstream: Upstream) -> AsyncGenerator[bytes, None]:
        """
        Pace the bytes of ``upstream``.

        Args:
            upstream: The producer to read from. It is not closed here;
                      the owner of the pipeline decides when to close it.

        Yields:
            Chunks of at most chunk_size bytes (the final flush after
            terminate() may be larger).
        """
        loop = asyncio.get_running_loop()
        buffer = bytearray()
        exhausted = False
        deadline = loop.time()

        try:
            while True:
                while not exhausted and not self._terminated and len(buffer) < self.chunk_size:
                    data = await upstream.read(self.chunk_size - len(buffer))
                    if not data:
                        exhausted = True
                        break
                    buffer.extend(data)

                if not buffer:
                    break

                if self._terminated:
                    # Flush everything already pulled from the upstream
                    self.bytes_released += len(buffer)
                    yield bytes(buffer)
                    buffer.clear()
                    break

                delay = deadline - loop.time()
                if delay > 0:
                    await self._sleep(delay)
                    if self._terminated:
                        continue

                chunk = bytes(buffer[: self.chunk_size])
                del buffer[: self.chunk_size]

                deadline = max(deadline, loop.time()) + len(chunk) / self.rate
                self.bytes_released += len(chunk)
                yield chunk
        finally:
            self._finished = True
