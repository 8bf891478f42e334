"""
WebSocket router for real-time ticket and kanban updates.

Clients authenticate with the session cookie (or ``?token=``) and then
receive every message published on their company's topics:
``company-{id}-ticket``, ``company-{id}-kanban`` and, for toasts aimed at
them, ``company-{id}-appMessage``.
"""

from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ticketflow.core.deps import COOKIE_NAME
from ticketflow.core.security import decode_session_token
from ticketflow.core.websocket import manager

router = APIRouter(tags=["WebSocket"])


def _identity(token: str | None) -> tuple[UUID, UUID] | None:
    if not token:
        return None
    try:
        payload = decode_session_token(token)
        return UUID(payload["sub"]), UUID(payload["company_id"])
    except Exception:
        return None


@router.websocket("/ws")
async def websocket_updates(
    websocket: WebSocket,
    token: str | None = Query(None),
):
    """Push channel; the only client message handled is the ``ping`` heartbeat."""
    identity = _identity(token) or _identity(websocket.cookies.get(COOKIE_NAME))
    if identity is None:
        await websocket.close(code=4001, reason="Authentication required")
        return

    user_id, company_id = identity
    await manager.connect(websocket, user_id, company_id)

    try:
        while True:
            try:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
            except WebSocketDisconnect:
                break
    finally:
        await manager.disconnect(websocket, user_id)
