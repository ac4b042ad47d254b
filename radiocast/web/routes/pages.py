"""
Page Routes for Radiocast.

Serves the listener and operator pages plus their static assets from the
public directory:
- /            -> redirect to /home
- /home        -> home/index.html
- /controller  -> controller/index.html
- /<path>      -> any other file under the public directory

Must be registered after every other router: the catch-all path would
otherwise shadow them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, RedirectResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"])

_public_directory: Path | None = None


def register_page_routes(app, public_directory: Path) -> None:
    """
    Register page routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        public_directory: Directory holding the static assets
    """
    global _public_directory
    _public_directory = public_directory
    app.include_router(router)


def resolve_public_file(relative: str) -> Path:
    """
    Resolve a request path to a file inside the public directory.

    Raises:
        HTTPException: 404 if the file is missing or outside the directory.
    """
    if _public_directory is None:
        raise HTTPException(status_code=404, detail="Not found")

    root = _public_directory.resolve()
    candidate = (root / relative).resolve()
    if not candidate.is_relative_to(root) or not candidate.is_file():
        logger.debug("Static file not found: %s", relative)
        raise HTTPException(status_code=404, detail="Not found")
    return candidate


@router.get("/", include_in_schema=False)
async def index() -> RedirectResponse:
    return RedirectResponse(url="/home", status_code=302)


@router.get("/home", include_in_schema=False)
async def home_page() -> FileResponse:
    return FileResponse(resolve_public_file("home/index.html"))


@router.get("/controller", include_in_schema=False)
async def controller_page() -> FileResponse:
    return FileResponse(resolve_public_file("controller/index.html"))


@router.get("/{file_path:path}", include_in_schema=False)
async def static_file(file_path: str) -> FileResponse:
    return FileResponse(resolve_public_file(file_path))
