"""
Open reminder sockets, grouped by viewer.

A viewer may have several tabs open; each fired reminder is pushed to all
of them. Sockets that fail a send are pruned on the spot.
"""

import asyncio
import json
import logging
from collections import defaultdict
from uuid import UUID

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        self._sockets: defaultdict[UUID, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, viewer_id: UUID) -> None:
        await websocket.accept()
        async with self._lock:
            self._sockets[viewer_id].add(websocket)

    async def disconnect(self, websocket: WebSocket, viewer_id: UUID) -> None:
        async with self._lock:
            self._remove(viewer_id, [websocket])

    def _remove(self, viewer_id: UUID, sockets) -> None:
        # Caller holds the lock
        remaining = self._sockets.get(viewer_id)
        if remaining is None:
            return
        remaining.difference_update(sockets)
        if not remaining:
            del self._sockets[viewer_id]

    async def send_to_user(self, viewer_id: UUID, message: dict) -> int:
        """Push message to every socket of viewer_id. Returns how many sends succeeded."""
        async with self._lock:
            targets = list(self._sockets.get(viewer_id, ()))
        if not targets:
            return 0

        text = json.dumps(message)
        dead = []
        for websocket in targets:
            try:
                await websocket.send_text(text)
            except Exception as exc:
                logger.debug("Pruning reminder socket viewer=%s: %s", viewer_id, type(exc).__name__)
                dead.append(websocket)

        if dead:
            async with self._lock:
                self._remove(viewer_id, dead)
        return len(targets) - len(dead)

    def get_connected_count(self, viewer_id: UUID) -> int:
        return len(self._sockets.get(viewer_id, ()))

    def connected_viewers(self) -> list[UUID]:
        return list(self._sockets)


manager = ConnectionManager()
