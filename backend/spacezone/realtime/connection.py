from __future__ import annotations

import asyncio
import logging
import uuid

from starlette.websockets import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class Connection:
    """
    One authenticated socket. ``handle`` identifies it in presence and rooms;
    ``rooms`` mirrors the broadcast groups it currently belongs to.
    """

    def __init__(self, websocket: WebSocket, user_id: int, profile: dict):
        self.handle = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.profile = profile
        self.rooms: set[str] = set()
        self.closed = False
        self._send_lock = asyncio.Lock()

    async def send(self, frame: dict) -> bool:
        """Send one JSON frame. Returns False if the socket has gone away."""
        if self.closed:
            return False
        async with self._send_lock:
            try:
                await self.websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                # RuntimeError: starlette refuses to send on a closed socket; OSError: peer went away mid-send
                self.closed = True
                logger.debug("Dropping frame for closed connection %s: %s", self.handle, exc)
                return False
        return True

    def __repr__(self) -> str:
        return f"<Connection {self.handle[:8]} user={self.user_id}>"
