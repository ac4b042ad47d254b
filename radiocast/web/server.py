"""
Web Server Module for Radiocast.

This module provides the WebServer class that creates and manages the
FastAPI application, registers all routes, and runs it under uvicorn.

The WebServer integrates:
- Stream endpoint for listeners
- Controller endpoint for the operator
- Static pages from the public directory
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from radiocast.web.routes.controller import register_controller_routes
from radiocast.web.routes.pages import register_page_routes
from radiocast.web.routes.stream import register_stream_routes

if TYPE_CHECKING:
    from radiocast.streaming.session import StationSession

logger = logging.getLogger(__name__)


class WebServer:
    """FastAPI-based web server for Radiocast."""

    def __init__(self, session: StationSession, public_directory: Path | None = None) -> None:
        """
        Initialize the WebServer.

        Args:
            session: The station session served by the routes
            public_directory: Static asset directory (defaults to the session config's)
        """
        self.session = session
        self.public_directory = public_directory or session.config.public_directory

        self.app = FastAPI(
            title="Radiocast",
            description="Single-station live audio broadcaster",
            version="0.1.0",
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._host = "0.0.0.0"
        self._port = 3000

        self._register_routes()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok", "server": "radiocast", "state": self.session.state.value}

        register_stream_routes(self.app, self.session)
        register_controller_routes(self.app, self.session)

        # Catch-all static files go last
        register_page_routes(self.app, self.public_directory)

    async def start(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        """
        Start the web server.

        Args:
            host: Host address to bind to
            port: Port to listen on
        """
        self._host = host
        self._port = port

        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        # Serve in background
        self._serve_task = asyncio.create_task(self._server.serve())

        logger.info("Web server started on http://%s:%d", host, port)

    async def stop(self) -> None:
        """Stop the web server."""
        if self._server is not None:
            self._server.should_exit = True
            self._server = None

        if self._serve_task is not None:
            await asyncio.gather(self._serve_task, return_exceptions=True)
            self._serve_task = None

        logger.info("Web server stopped")

    @property
    def port(self) -> int:
        """Get the server port."""
        return self._port

    @property
    def host(self) -> str:
        """Get the server host."""
        return self._host
