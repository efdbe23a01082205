"""
In-process WebSocket hub for pushing notification events to connected users.

A user may hold several sockets (tabs, devices). Messages are JSON objects of
the form {"event": <name>, "data": <payload>}.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: dict[int, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)
        logger.info("ws_connected user_id=%s sockets=%s", user_id, len(self.active_connections[user_id]))

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self.active_connections.get(user_id)
            if sockets is None:
                return None
            sockets.discard(websocket)
            if not sockets:
                self.active_connections.pop(user_id, None)
        logger.info("ws_disconnected user_id=%s", user_id)

    def is_connected(self, user_id: int) -> bool:
        return bool(self.active_connections.get(user_id))

    def connection_count(self) -> int:
        return sum(len(s) for s in self.active_connections.values())

    async def send_to_user(self, user_id: int, event: str, data: Any) -> int:
        """
        Push one event to every socket of a user. Returns how many sockets received it.
        """
        sockets = list(self.active_connections.get(user_id, ()))
        if not sockets:
            return 0

        message = {"event": event, "data": jsonable_encoder(data)}
        delivered = 0
        for websocket in sockets:
            try:
                await websocket.send_json(message)
            except (RuntimeError, ConnectionError) as exc:
                logger.warning("ws_send_failed user_id=%s event=%s error=%s", user_id, event, exc)
                await self.disconnect(user_id, websocket)
                continue
            delivered += 1
        return delivered


manager = ConnectionManager()
