# backend/spacezone/api/routes/ws.py
from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from spacezone.core.errors import AuthError, ValidationError
from spacezone.core.security import strip_bearer
from spacezone.realtime.connection import Connection
from spacezone.realtime.events import ERROR, envelope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

AUTH_CLOSE_CODE = 4401


@router.websocket("/ws")
async def realtime(websocket: WebSocket):
    manager = websocket.app.state.manager

    # browsers cannot set headers on a websocket upgrade, so accept ?token= as well
    raw_token = websocket.query_params.get("token") or websocket.headers.get("authorization")

    await websocket.accept()
    try:
        user_id, profile = await manager.authenticate(strip_bearer(raw_token))
    except AuthError as exc:
        logger.info("Rejected realtime connection: %s", exc.code)
        await websocket.send_json(envelope(ERROR, {"message": exc.message, "code": "AUTH_ERROR", "reason": exc.code}))
        await websocket.close(code=AUTH_CLOSE_CODE)
        return

    connection = Connection(websocket, user_id, profile)
    await manager.on_connect(connection)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            text = message.get("text")
            if text is None:
                error = ValidationError("Only text frames are accepted", code="INVALID_FRAME")
                await connection.send(envelope(ERROR, error.to_payload()))
                continue

            ack = await manager.handle_text(connection, text)
            if ack is not None:
                await connection.send(ack)
    except WebSocketDisconnect as exc:
        logger.debug("Connection %s disconnected (code %s)", connection.handle, exc.code)
    finally:
        connection.closed = True
        await manager.on_disconnect(connection)
