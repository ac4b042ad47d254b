"""
Web Routes Package.

This package contains FastAPI route modules:
- stream: Listener audio stream (/stream)
- controller: Operator commands (/controller, /controller/status)
- pages: Static pages and assets (/, /home, /controller, /<file>)
"""

from radiocast.web.routes.controller import register_controller_routes
from radiocast.web.routes.pages import register_page_routes
from radiocast.web.routes.stream import register_stream_routes

__all__ = [
    "register_controller_routes",
    "register_page_routes",
    "register_stream_routes",
]
