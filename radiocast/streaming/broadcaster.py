"""
Broadcaster - fan-out sink for paced audio.

Every chunk released by the pacer is replicated to every registered listener
channel, in order. Delivery is best effort: a closed or lagging listener is
evicted on its own and never affects the other listeners or the pipeline.
Listeners registered after a chunk went out never see that chunk.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable

from radiocast.streaming.errors import ListenerWriteFailure
from radiocast.streaming.listeners import ListenerRegistry

logger = logging.getLogger(__name__)


class Broadcaster:
    """Replicates a byte stream to all listeners of a registry."""

    def __init__(self, registry: ListenerRegistry) -> None:
        self.registry = registry
        self.chunks_delivered = 0
        self.bytes_delivered = 0

    def deliver(self, chunk: bytes) -> int:
        """
        Write one chunk to every live listener.

        Args:
            chunk: The audio bytes to replicate.

        Returns:
            The number of listeners that accepted the chunk.
        """
        reached = 0
        for listener_id, channel in self.registry.snapshot():
            if channel.closed:
                self.registry.unregister(listener_id)
                continue
            try:
                channel.write(chunk)
            except ListenerWriteFailure as e:
                logger.warning("Evicting listener %s: %s", listener_id, e)
                channel.close()
                self.registry.unregister(listener_id)
                continue
            reached += 1

        self.chunks_delivered += 1
        self.bytes_delivered += len(chunk)
        return reached

    async def consume(self, stream: AsyncIterable[bytes]) -> int:
        """
        Deliver every chunk of ``stream``.

        Returns:
            The number of chunks delivered.
        """
        count = 0
        async for chunk in stream:
            self.deliver(chunk)
            count += 1
        return count
