"""
Stream Route for Radiocast.

Provides the /stream endpoint: the listener connection boundary. Every
request registers a listener channel with the station session and drains it
into a chunked HTTP response until the client goes away.

The route never reads audio itself; it only forwards whatever the
broadcaster put into the listener's channel. A listener that connects while
the station is idle stays connected and starts receiving audio on the next
start.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncIterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

if TYPE_CHECKING:
    from radiocast.streaming.session import StationSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["streaming"])

# Reference to the station session, set during route registration
_session: StationSession | None = None


def register_stream_routes(app, session: StationSession) -> None:
    """
    Register stream routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        session: StationSession whose listeners are served
    """
    global _session
    _session = session
    app.include_router(router)


@router.get("/stream")
async def stream_audio(request: Request) -> StreamingResponse:
    """
    Stream the station's audio to one listener.

    Returns:
        StreamingResponse carrying the broadcast.

    Raises:
        HTTPException: 503 if the session is not initialized.
    """
    if _session is None:
        raise HTTPException(status_code=503, detail="Station not initialized")

    session = _session
    listener_id, channel = session.register_listener()
    client_host = request.client.host if request.client else "unknown"
    logger.info("Listener %s connected from %s", listener_id, client_host)

    async def generate() -> AsyncIterator[bytes]:
        """Drain the listener's channel."""
        sent = 0
        try:
            async for chunk in channel:
                yield chunk
                sent += len(chunk)
        finally:
            session.unregister_listener(listener_id)
            logger.info("Listener %s disconnected after %d bytes", listener_id, sent)

    return StreamingResponse(
        generate(),
        media_type="audio/mpeg",
        headers={
            "Accept-Ranges": "none",
            "Cache-Control": "no-cache, no-store",
            "X-Content-Type-Options": "nosniff",
        },
    )
