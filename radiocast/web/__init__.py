"""
Radiocast Web Layer.

This package provides the HTTP layer of the station: the listener stream,
the operator's controller endpoint and the static pages.

Components:
- WebServer: FastAPI application with all routes
"""

from radiocast.web.server import WebServer

__all__ = [
    "WebServer",
]
