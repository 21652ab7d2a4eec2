"""WebSocket /ws/ endpoint — live configuration stream."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket
from fastapi.responses import JSONResponse

from confsync.errors import TransportSetupError
from confsync.session import CLOSE_INTERNAL_ERROR, ClientSession

log = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/")
async def config_ws(ws: WebSocket):
    """Hand the connection to a fresh ClientSession for its whole lifetime."""
    session = ClientSession(ws, ws.app.state.hub, ws.app.state.shared_config)
    log.debug("Starting websocket session %d for %s", session.session_id, ws.client)
    try:
        await session.run()
    except TransportSetupError as e:
        log.error("Error starting websocket session %d: %s", session.session_id, e)
        await _reject(ws)


async def _reject(ws: WebSocket) -> None:
    """Answer a failed upgrade with HTTP 500, or a 1011 close if the server can't."""
    try:
        await ws.send_denial_response(
            JSONResponse({"error": "websocket_setup_failed"}, status_code=500)
        )
        return
    except RuntimeError as e:
        log.debug("denial response unavailable, closing instead: %s", e)
    try:
        await ws.close(code=CLOSE_INTERNAL_ERROR)
    except (RuntimeError, OSError):
        pass
