"""
Controller Routes for Radiocast.

The operator's command channel:
- POST /controller  {"command": "start" | "stop" | "<effect name>"}
- GET  /controller/status

Commands are matched loosely: anything containing "start" starts the
station, anything containing "stop" stops it, and everything else is taken
as the name of an effect to mix in.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, Request

from radiocast.streaming.errors import (
    EffectNotFound,
    MixerError,
    PipelineStateError,
    SourceNotFound,
)

if TYPE_CHECKING:
    from radiocast.streaming.session import StationSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["controller"])

_session: StationSession | None = None


def register_controller_routes(app, session: StationSession) -> None:
    """
    Register controller routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        session: StationSession to control
    """
    global _session
    _session = session
    app.include_router(router)


def _require_session() -> StationSession:
    if _session is None:
        raise HTTPException(status_code=503, detail="Station not initialized")
    return _session


@router.post("/controller")
async def controller_command(request: Request) -> dict[str, Any]:
    """Run one operator command.

    Request body: {"command": "start"}
    """
    session = _require_session()

    body = await request.json()
    command = str(body.get("command") or "").strip().lower() if isinstance(body, dict) else ""
    if not command:
        raise HTTPException(status_code=400, detail="Missing 'command' in request body")

    logger.info("Controller command: %s", command)

    try:
        if "start" in command:
            await session.start()
            return {"result": "ok", "state": session.state.value}

        if "stop" in command:
            await session.stop()
            return {"result": "ok", "state": session.state.value}

        effect = await session.inject(command)
        return {"result": "ok", "state": session.state.value, "effect": effect.name}

    except (SourceNotFound, EffectNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PipelineStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except MixerError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e


@router.get("/controller/status")
async def controller_status() -> dict[str, Any]:
    """Station state plus the effects that can be played."""
    session = _require_session()
    status = session.status()
    status["effects"] = session.effects.names()
    return status
