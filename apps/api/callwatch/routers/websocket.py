"""
Reminder push channel.

Reminders fired by the viewer's scheduler arrive as
`{"type": "call_reminder", "data": {...}}`. Clients may send "ping" as a
heartbeat and get "pong" back; anything else is ignored.
"""

from uuid import UUID

import anyio
import jwt
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from callwatch.core.deps import COOKIE_NAME
from callwatch.core.security import decode_session_token
from callwatch.core.websocket import manager
from callwatch.db.models import User
from callwatch.db.session import SessionLocal
from callwatch.schemas.auth import TokenPayload

router = APIRouter(prefix="/ws", tags=["WebSocket"])

UNAUTHENTICATED = 4001


def _authenticate(token: str | None) -> UUID | None:
    """Viewer id for a live session token, else None (same checks as HTTP auth)."""
    if not token:
        return None
    try:
        claims = TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        return None
    with SessionLocal() as db:
        user = db.get(User, claims.sub)
        if user is None or not user.is_active or user.token_version != claims.token_version:
            return None
        return user.id


@router.websocket("/notifications")
async def reminder_socket(websocket: WebSocket, token: str | None = Query(None)):
    # Query token for non-browser clients, cookie for the web app
    viewer_id = await anyio.to_thread.run_sync(
        _authenticate, token or websocket.cookies.get(COOKIE_NAME)
    )
    if viewer_id is None:
        await websocket.close(code=UNAUTHENTICATED, reason="Authentication required")
        return

    await manager.connect(websocket, viewer_id)
    try:
        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket, viewer_id)
