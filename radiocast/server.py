"""
Radiocast - Main Server Module

This module contains the RadioServer class that wires the station session,
the external audio utility and the web server together and manages the
application lifecycle.
"""

import asyncio
import logging
import signal

from radiocast.config import StationConfig
from radiocast.streaming.session import StationSession
from radiocast.streaming.sox import SoxUtility, resolve_binary
from radiocast.web.server import WebServer

logger = logging.getLogger(__name__)


class RadioServer:
    """
    Main Radiocast server that coordinates all components.

    The server manages:
    - The station session (pacer, broadcaster, listener registry, mixer)
    - The web server for listeners and the operator
    """

    def __init__(self, config: StationConfig, *, autostart: bool = False) -> None:
        """
        Initialize the Radiocast server.

        Args:
            config: Station configuration.
            autostart: Start streaming the default source right away.
        """
        self.config = config
        self.autostart = autostart

        self.utility = SoxUtility(
            config.sox_binary,
            media_type=config.media_type,
            channels=config.channels,
            timeout=config.utility_timeout,
        )
        self.session = StationSession(config, self.utility)
        self.web_server = WebServer(self.session, config.public_directory)

        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    async def start(self) -> None:
        """Start all server components."""
        logger.info("Starting Radiocast on %s:%d", self.config.host, self.config.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        if resolve_binary(self.config.sox_binary) is None:
            logger.warning(
                "%s not found: bitrates fall back to %d bit/s and effects are unavailable",
                self.config.sox_binary,
                self.config.fallback_bitrate,
            )

        await self.web_server.start(host=self.config.host, port=self.config.port)

        if self.autostart:
            await self.session.start()

        logger.info("Radiocast started successfully")

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        if not self._running:
            return

        logger.info("Stopping Radiocast...")
        self._running = False

        # Close the session first so listener responses can finish
        await self.session.close()
        await self.web_server.stop()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("Radiocast stopped")

    async def run(self) -> None:
        """
        Run the server until shutdown is requested.

        This method starts all components and waits for a shutdown signal
        (SIGINT or SIGTERM).
        """
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    @property
    def connected_listeners(self) -> int:
        """Get the number of currently connected listeners."""
        return len(self.session.registry)
