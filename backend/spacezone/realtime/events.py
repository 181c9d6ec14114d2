"""Event names and frame builders for the realtime channel."""
from __future__ import annotations

from spacezone.schemas.common import iso_now

# client -> server
CONVERSATION_JOIN = "conversation:join"
CONVERSATION_LEAVE = "conversation:leave"
MESSAGE_SEND = "message:send"
MESSAGE_READ = "message:read"
TYPING_START = "typing:start"
TYPING_STOP = "typing:stop"
USERS_GET_ONLINE = "users:get_online"
CALL_OFFER = "call:offer"
CALL_ANSWER = "call:answer"
CALL_ICE_CANDIDATE = "call:ice-candidate"
CALL_DECLINE = "call:decline"
CALL_END = "call:end"

# server -> client
USER_ONLINE = "user:online"
USER_OFFLINE = "user:offline"
USERS_ONLINE = "users:online"
USER_JOINED_CONVERSATION = "user:joined_conversation"
USER_LEFT_CONVERSATION = "user:left_conversation"
CONVERSATION_JOINED = "conversation:joined"
CONVERSATION_LEFT = "conversation:left"
MESSAGE_NEW = "message:new"
MESSAGE_SENT = "message:sent"
MESSAGE_ERROR = "message:error"
MESSAGE_EDITED = "message:edited"
MESSAGE_DELETED = "message:deleted"
USER_TYPING = "user:typing"
USER_STOP_TYPING = "user:stop_typing"
CALL_INCOMING = "call:incoming"
CALL_ERROR = "call:error"
ERROR = "error"
ACK = "ack"

CALL_EVENTS = frozenset({CALL_OFFER, CALL_ANSWER, CALL_ICE_CANDIDATE, CALL_DECLINE, CALL_END})


def conversation_room(conversation_id: int) -> str:
    return f"conversation:{conversation_id}"


def envelope(event: str, data: dict | None = None) -> dict:
    payload = dict(data or {})
    payload.setdefault("timestamp", iso_now())
    return {"event": event, "data": payload}


def ack_frame(ack_id, result: dict) -> dict:
    return {"event": ACK, "ack": ack_id, "data": {**result, "timestamp": iso_now()}}


def error_event_for(event: str | None) -> str:
    """Which error event reports a failure of ``event`` back to its sender."""
    if event == MESSAGE_SEND:
        return MESSAGE_ERROR
    if event in CALL_EVENTS:
        return CALL_ERROR
    return ERROR
