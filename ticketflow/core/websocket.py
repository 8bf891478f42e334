"""
WebSocket connection manager for real-time ticket and board updates.

Connections are registered per user and grouped by company so that a
publish on ``company-{id}-ticket`` or ``company-{id}-kanban`` fans out to
every connected client of that company and nobody else.
"""

from typing import Dict, Set
from uuid import UUID
import asyncio
import json
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections per user and company."""

    def __init__(self):
        # user_id -> set of active WebSocket connections
        self._connections: Dict[UUID, Set[WebSocket]] = {}
        # user_id -> company_id (for company-wide publishes)
        self._user_companies: Dict[UUID, UUID] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: UUID, company_id: UUID):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
            self._user_companies[user_id] = company_id

    async def disconnect(self, websocket: WebSocket, user_id: UUID):
        """Remove a WebSocket connection."""
        async with self._lock:
            self._drop(user_id, [websocket])

    def _drop(self, user_id: UUID, sockets: list[WebSocket]) -> None:
        if user_id not in self._connections:
            return
        for ws in sockets:
            self._connections[user_id].discard(ws)
        if not self._connections[user_id]:
            del self._connections[user_id]
            self._user_companies.pop(user_id, None)

    async def send_to_user(self, user_id: UUID, message: dict):
        """Send a message to all connections of one user."""
        async with self._lock:
            connections = self._connections.get(user_id, set()).copy()

        if not connections:
            return

        data = json.dumps(message, default=str)
        closed = []

        for ws in connections:
            try:
                await ws.send_text(data)
            except Exception:
                logger.debug("websocket_send_failed user_id=%s", user_id, exc_info=True)
                closed.append(ws)

        if closed:
            async with self._lock:
                self._drop(user_id, closed)

    async def publish(self, company_id: UUID, topic: str, payload: dict):
        """Send ``{topic, payload}`` to every connected user of a company."""
        message = {"topic": topic, "payload": payload}
        for user_id in self.get_company_user_ids(company_id):
            await self.send_to_user(user_id, message)

    def has_company_connections(self, company_id: UUID) -> bool:
        return any(cid == company_id for cid in self._user_companies.values())

    def is_user_connected(self, user_id: UUID) -> bool:
        return bool(self._connections.get(user_id))

    def get_company_user_ids(self, company_id: UUID) -> list[UUID]:
        """Get all connected user IDs for a company."""
        return [uid for uid, cid in self._user_companies.items() if cid == company_id]

    def get_total_connections(self) -> int:
        """Get total number of active connections across all users."""
        return sum(len(conns) for conns in self._connections.values())


# Singleton instance
manager = ConnectionManager()
