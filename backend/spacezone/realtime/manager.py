"""
Messaging session manager: per-connection authentication, conversation
rooms and event dispatch for the realtime channel.

Handlers never raise into the transport. A DomainError becomes a typed
error event for the originating connection and an unsuccessful result for
the acknowledgement.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime

from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from spacezone.core.config import Settings, settings as default_settings
from spacezone.core.errors import DomainError, ServerError, ValidationError, parse_id
from spacezone.core.security import user_from_token
from spacezone.db.session import run_in_session
from spacezone.realtime import events
from spacezone.realtime.calls import CallRelay
from spacezone.realtime.events import conversation_room, envelope
from spacezone.realtime.groups import BroadcastGroups
from spacezone.realtime.presence import PresenceTracker
from spacezone.schemas.common import iso
from spacezone.schemas.message import serialize_message
from spacezone.security.rate_limiter import RateLimiter
from spacezone.services import messaging

logger = logging.getLogger(__name__)

CONVERSATION_ROOM_PREFIX = conversation_room("")


class MessagingSessionManager:
    def __init__(
        self,
        session_factory: sessionmaker,
        presence: PresenceTracker,
        groups: BroadcastGroups,
        calls: CallRelay,
        rate_limiter: RateLimiter,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.presence = presence
        self.groups = groups
        self.calls = calls
        self.rate_limiter = rate_limiter
        self.settings = settings or default_settings

        self.presence.on_offline = self.announce_offline

        self._handlers = {
            events.CONVERSATION_JOIN: self.join_conversation,
            events.CONVERSATION_LEAVE: self.leave_conversation,
            events.MESSAGE_SEND: self.send_message,
            events.MESSAGE_READ: self.mark_read,
            events.TYPING_START: self.typing_start,
            events.TYPING_STOP: self.typing_stop,
            events.USERS_GET_ONLINE: self.get_online_users,
            events.CALL_OFFER: self.call_offer,
            events.CALL_ANSWER: self.call_answer,
            events.CALL_ICE_CANDIDATE: self.call_ice_candidate,
            events.CALL_DECLINE: self.call_decline,
            events.CALL_END: self.call_end,
        }

    async def _db(self, fn, *args, **kwargs):
        return await run_in_threadpool(run_in_session, self.session_factory, fn, *args, **kwargs)

    # lifecycle

    async def authenticate(self, token: str | None) -> tuple[int, dict]:
        """Resolve a bearer token to ``(user_id, profile)``. Raises AuthError."""
        def _resolve(db):
            user = user_from_token(db, token)
            return user.id, user.profile()

        return await self._db(_resolve)

    async def on_connect(self, connection) -> None:
        self.presence.register(connection)
        logger.info("Connection %s opened for user %s", connection.handle, connection.user_id)

        await self.broadcast_all(
            events.USER_ONLINE,
            {"userId": connection.user_id, "user": connection.profile},
            exclude_handle=connection.handle,
        )
        await connection.send(envelope(events.USERS_ONLINE, {"onlineUsers": self.presence.online_users()}))

    async def on_disconnect(self, connection) -> None:
        for room in self.groups.groups_of(connection):
            self.groups.leave(room, connection)

        self.presence.deregister(connection)
        logger.info("Connection %s closed for user %s", connection.handle, connection.user_id)

        await self.calls.on_disconnect(connection.user_id, reason="disconnected")

    async def announce_offline(self, user_id: int, last_seen: datetime) -> None:
        await self.broadcast_all(events.USER_OFFLINE, {"userId": user_id, "lastSeen": iso(last_seen)})

    async def broadcast_all(self, event: str, data: dict, exclude_handle: str | None = None) -> int:
        frame = envelope(event, data)
        targets = [c for c in self.presence.all_connections() if c.handle != exclude_handle]
        for connection in targets:
            await connection.send(frame)
        return len(targets)

    async def publish(self, conversation_id: int, event: str, data: dict) -> int:
        """Fan an event out to a conversation room (used for REST-originated changes)."""
        return await self.groups.broadcast(conversation_room(conversation_id), event, data)

    # dispatch

    async def handle_text(self, connection, text: str) -> dict | None:
        """
        Parse one client frame, run its handler and return the ack frame to
        send back, or None when the client did not ask for one.
        """
        try:
            frame = json.loads(text)
        except ValueError:
            frame = None
        if not isinstance(frame, dict):
            error = ValidationError("Frames must be JSON objects", code="INVALID_FRAME")
            await connection.send(envelope(events.ERROR, error.to_payload()))
            return None

        result = await self.dispatch(connection, frame.get("event"), frame.get("data"))
        ack_id = frame.get("ack")
        if ack_id is None:
            return None
        return events.ack_frame(ack_id, result)

    async def dispatch(self, connection, event: str | None, data) -> dict:
        """Run the handler for ``event`` and return its acknowledgement result."""
        error_event = events.error_event_for(event)
        try:
            handler = self._handlers.get(event)
            if handler is None:
                raise ValidationError(f"Unknown event: {event}", code="UNKNOWN_EVENT")
            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise ValidationError("Event data must be an object", code="INVALID_FRAME")
            result = await handler(connection, data)
        except DomainError as exc:
            logger.debug("%s from user %s failed: %s", event, connection.user_id, exc.code)
            await connection.send(envelope(error_event, exc.to_payload()))
            return {"success": False, "error": exc.message, "code": exc.code}
        except Exception:
            logger.exception("Unhandled error in %s for user %s", event, connection.user_id)
            exc = ServerError()
            await connection.send(envelope(error_event, exc.to_payload()))
            return {"success": False, "error": exc.message, "code": exc.code}

        return {"success": True, **(result or {})}

    # conversation rooms

    async def join_conversation(self, connection, data: dict) -> dict:
        conversation_id = parse_id(data.get("conversationId"), "conversationId")
        await self._db(messaging.conversation_for_participant, conversation_id, connection.user_id)

        for room in self.groups.groups_of(connection, CONVERSATION_ROOM_PREFIX):
            self.groups.leave(room, connection)
            await self.groups.broadcast(room, events.USER_LEFT_CONVERSATION, {
                "conversationId": int(room[len(CONVERSATION_ROOM_PREFIX):]),
                "userId": connection.user_id,
            })

        room = conversation_room(conversation_id)
        self.groups.join(room, connection)
        logger.info("User %s joined conversation %s", connection.user_id, conversation_id)

        await self.groups.broadcast(room, events.USER_JOINED_CONVERSATION, {
            "conversationId": conversation_id,
            "userId": connection.user_id,
            "user": connection.profile,
        }, exclude_handle=connection.handle)
        await connection.send(envelope(events.CONVERSATION_JOINED, {"conversationId": conversation_id}))
        return {"conversationId": conversation_id}

    async def leave_conversation(self, connection, data: dict) -> dict:
        conversation_id = parse_id(data.get("conversationId"), "conversationId")
        room = conversation_room(conversation_id)

        self.groups.leave(room, connection)
        await self.groups.broadcast(room, events.USER_LEFT_CONVERSATION, {
            "conversationId": conversation_id,
            "userId": connection.user_id,
        })
        await connection.send(envelope(events.CONVERSATION_LEFT, {"conversationId": conversation_id}))
        return {"conversationId": conversation_id}

    # messages

    async def send_message(self, connection, data: dict) -> dict:
        conversation_id = parse_id(data.get("conversationId"), "conversationId")
        def _persist(db):
            message = messaging.send_message(
                db,
                connection.user_id,
                conversation_id,
                data.get("content"),
                data.get("type") or "text",
                data.get("sharedPost"),
                limiter=self.rate_limiter,
                config=self.settings,
            )
            return serialize_message(message)

        message = await self._db(_persist)

        await self.groups.broadcast(
            conversation_room(conversation_id),
            events.MESSAGE_NEW,
            {"conversationId": conversation_id, "message": message},
            exclude_handle=connection.handle,
        )
        await connection.send(envelope(events.MESSAGE_SENT, {"conversationId": conversation_id, "message": message}))
        return {"messageId": message["id"]}

    async def mark_read(self, connection, data: dict) -> dict:
        message_id = parse_id(data.get("messageId"), "messageId")

        def _read(db):
            message, added = messaging.mark_read(db, connection.user_id, message_id)
            read_at = next((r.read_at for r in message.read_by if r.user_id == connection.user_id), None)
            return message.conversation_id, added, read_at

        conversation_id, added, read_at = await self._db(_read)
        if added:
            await self.groups.broadcast(conversation_room(conversation_id), events.MESSAGE_READ, {
                "conversationId": conversation_id,
                "messageId": message_id,
                "userId": connection.user_id,
                "readAt": iso(read_at),
            }, exclude_handle=connection.handle)
        return {"messageId": message_id}

    async def _typing(self, connection, data: dict, event: str) -> dict:
        conversation_id = parse_id(data.get("conversationId"), "conversationId")
        room = conversation_room(conversation_id)
        if self.groups.is_member(room, connection):
            await self.groups.broadcast(room, event, {
                "conversationId": conversation_id,
                "userId": connection.user_id,
                "username": connection.profile.get("username"),
            }, exclude_handle=connection.handle)
        return {"conversationId": conversation_id}

    async def typing_start(self, connection, data: dict) -> dict:
        return await self._typing(connection, data, events.USER_TYPING)

    async def typing_stop(self, connection, data: dict) -> dict:
        return await self._typing(connection, data, events.USER_STOP_TYPING)

    async def get_online_users(self, connection, data: dict) -> dict:
        await connection.send(envelope(events.USERS_ONLINE, {"onlineUsers": self.presence.online_users()}))
        return {}

    # calls

    async def call_offer(self, connection, data: dict) -> dict:
        call = await self.calls.offer(connection, data)
        return {"callId": call.call_id}

    async def call_answer(self, connection, data: dict) -> dict:
        call = await self.calls.answer(connection, data)
        return {"callId": call.call_id}

    async def call_ice_candidate(self, connection, data: dict) -> dict:
        call = await self.calls.ice_candidate(connection, data)
        return {"callId": call.call_id}

    async def call_decline(self, connection, data: dict) -> dict:
        call = await self.calls.decline(connection, data)
        return {"callId": call.call_id}

    async def call_end(self, connection, data: dict) -> dict:
        call = await self.calls.end(connection, data)
        return {"callId": call.call_id}
