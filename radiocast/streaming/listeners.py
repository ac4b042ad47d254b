"""
Listener Registry - connected listener channels.

Each connected client owns one ListenerChannel: a bounded in-memory queue of
audio chunks. The broadcaster writes into it, the connection layer (the
/stream route) drains it toward the network. The registry never performs
network I/O itself.

Iteration over the registry always goes through snapshot(), so removing a
listener while a broadcast is running never skips or double-processes a
neighbouring entry.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import AsyncIterator, Iterator

from radiocast.streaming.errors import ListenerWriteFailure

logger = logging.getLogger(__name__)

# How many chunks a listener may lag behind before it is evicted
DEFAULT_MAX_PENDING_CHUNKS = 64


class ListenerChannel:
    """
    Outward byte sink for one connected listener.

    write() never blocks: a full buffer is a write failure, so a slow
    listener only ever hurts itself.
    """

    def __init__(self, listener_id: str, max_pending: int = DEFAULT_MAX_PENDING_CHUNKS) -> None:
        self.listener_id = listener_id
        self.max_pending = max_pending
        self.bytes_written = 0
        self._pending: deque[bytes] = deque()
        self._readable = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of chunks waiting to be drained."""
        return len(self._pending)

    def write(self, chunk: bytes) -> None:
        """
        Queue a chunk for this listener.

        Raises:
            ListenerWriteFailure: If the channel is closed or its buffer is full.
        """
        if self._closed:
            raise ListenerWriteFailure(f"Listener {self.listener_id} is closed")
        if len(self._pending) >= self.max_pending:
            raise ListenerWriteFailure(
                f"Listener {self.listener_id} fell {len(self._pending)} chunks behind"
            )
        self._pending.append(chunk)
        self.bytes_written += len(chunk)
        self._readable.set()

    async def read(self) -> bytes | None:
        """Wait for the next chunk; returns None once the channel is closed."""
        while not self._pending:
            if self._closed:
                return None
            self._readable.clear()
            await self._readable.wait()
        return self._pending.popleft()

    def read_nowait(self) -> list[bytes]:
        """Drain every chunk that is already queued."""
        chunks = list(self._pending)
        self._pending.clear()
        return chunks

    def close(self) -> None:
        """Mark the remote end as gone; pending chunks are discarded."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self._readable.set()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read()
            if chunk is None:
                return
            yield chunk

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ListenerChannel({self.listener_id!r}, {state}, pending={len(self._pending)})"


class ListenerRegistry:
    """
    Registry of connected listener channels, keyed by an opaque identifier.

    Everything runs on one event loop and no method awaits, so no lock is
    needed.
    """

    def __init__(self, max_pending_chunks: int = DEFAULT_MAX_PENDING_CHUNKS) -> None:
        self.max_pending_chunks = max_pending_chunks
        self._channels: dict[str, ListenerChannel] = {}

    def register(self) -> tuple[str, ListenerChannel]:
        """
        Create and register a channel for a new listener.

        Returns:
            The fresh listener id and its channel.
        """
        listener_id = uuid.uuid4().hex
        channel = ListenerChannel(listener_id, self.max_pending_chunks)
        self._channels[listener_id] = channel
        logger.info("Listener registered: %s (%d connected)", listener_id, len(self._channels))
        return listener_id, channel

    def unregister(self, listener_id: str) -> ListenerChannel | None:
        """
        Remove a listener. Safe to call for an id that is already gone.

        Returns:
            The removed channel, or None if it was not registered.
        """
        channel = self._channels.pop(listener_id, None)
        if channel is not None:
            logger.info("Listener unregistered: %s (%d connected)", listener_id, len(self._channels))
        return channel

    def get(self, listener_id: str) -> ListenerChannel | None:
        return self._channels.get(listener_id)

    def snapshot(self) -> list[tuple[str, ListenerChannel]]:
        """A copy of the current entries, safe to iterate while mutating."""
        return list(self._channels.items())

    def close_all(self) -> None:
        """Close every channel and clear the registry (server shutdown)."""
        channels = list(self._channels.values())
        self._channels.clear()
        for channel in channels:
            channel.close()
        logger.info("All listeners closed (%d total)", len(channels))

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, listener_id: object) -> bool:
        return listener_id in self._channels

    def __iter__(self) -> Iterator[str]:
        """Iterate over a snapshot of registered listener ids."""
        return iter(list(self._channels))

    def __bool__(self) -> bool:
        """A registry instance is always truthy, even when empty."""
        return True
