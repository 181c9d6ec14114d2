"""
Call signaling relay.

Calls live only in memory: ``calling -> connected -> ended`` or
``calling -> declined``. Offer/answer/ICE payloads are relayed verbatim to
the counterparty's live connections found through the presence tracker.
Terminal calls are removed from the registry.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from spacezone.core.errors import Conflict, Forbidden, NotFound, RecipientOffline, ValidationError, parse_id
from spacezone.db.base import utcnow
from spacezone.realtime import events
from spacezone.realtime.presence import PresenceTracker

logger = logging.getLogger(__name__)

CALL_TYPES = ("audio", "video")


@dataclass
class ActiveCall:
    call_id: str
    caller_id: int
    recipient_id: int
    call_type: str = "audio"
    status: str = "calling"
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None

    def involves(self, user_id: int) -> bool:
        return user_id in (self.caller_id, self.recipient_id)

    def counterparty(self, user_id: int) -> int:
        return self.recipient_id if user_id == self.caller_id else self.caller_id

    @property
    def duration_seconds(self) -> float:
        end = self.end_time or utcnow()
        return (end - self.start_time).total_seconds()


def _required(data: dict, key: str):
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} is required", code="MISSING_FIELD")
    return value


class CallRelay:
    def __init__(self, presence: PresenceTracker):
        self.presence = presence
        self._calls: dict[str, ActiveCall] = {}
        self._lock = threading.Lock()

    def get(self, call_id: str) -> ActiveCall | None:
        with self._lock:
            return self._calls.get(call_id)

    def active_calls(self) -> list[ActiveCall]:
        with self._lock:
            return list(self._calls.values())

    async def _send_to_user(self, user_id: int, event: str, data: dict) -> int:
        frame = events.envelope(event, data)
        targets = self.presence.lookup(user_id)
        for connection in targets:
            await connection.send(frame)
        return len(targets)

    def _call_for_party(self, call_id, user_id: int) -> ActiveCall:
        call_id = str(_required({"callId": call_id}, "callId"))
        with self._lock:
            call = self._calls.get(call_id)
        if call is None:
            raise NotFound("Call not found", code="CALL_NOT_FOUND")
        if not call.involves(user_id):
            raise Forbidden("You are not part of this call")
        return call

    def _pop_for_party(self, call_id, user_id: int) -> ActiveCall:
        call = self._call_for_party(call_id, user_id)
        with self._lock:
            if self._calls.pop(call.call_id, None) is None:
                raise NotFound("Call not found", code="CALL_NOT_FOUND")
        return call

    async def offer(self, connection, data: dict) -> ActiveCall:
        call_id = str(_required(data, "callId"))
        offer = _required(data, "offer")
        recipient_id = parse_id(data.get("recipientId"), "recipientId")
        call_type = data.get("callType") or "audio"
        if call_type not in CALL_TYPES:
            raise ValidationError("callType must be audio or video", code="INVALID_CALL_TYPE")
        if recipient_id == connection.user_id:
            raise ValidationError("You cannot call yourself", code="SELF_TARGET")

        if not self.presence.lookup(recipient_id):
            raise RecipientOffline("User is not online")

        call = ActiveCall(
            call_id=call_id,
            caller_id=connection.user_id,
            recipient_id=recipient_id,
            call_type=call_type,
        )
        with self._lock:
            if call_id in self._calls:
                raise Conflict("A call with this id is already active", code="CALL_EXISTS")
            self._calls[call_id] = call

        logger.info("Call %s: %s -> %s (%s)", call_id, call.caller_id, recipient_id, call_type)
        await self._send_to_user(recipient_id, events.CALL_INCOMING, {
            "callId": call_id,
            "callType": call_type,
            "callerId": connection.user_id,
            "caller": connection.profile,
            "offer": offer,
        })
        return call

    async def answer(self, connection, data: dict) -> ActiveCall:
        call = self._call_for_party(data.get("callId"), connection.user_id)
        answer = _required(data, "answer")
        call.status = "connected"
        logger.info("Call %s connected", call.call_id)
        await self._send_to_user(call.counterparty(connection.user_id), events.CALL_ANSWER, {
            "callId": call.call_id,
            "userId": connection.user_id,
            "answer": answer,
        })
        return call

    async def ice_candidate(self, connection, data: dict) -> ActiveCall:
        call = self._call_for_party(data.get("callId"), connection.user_id)
        candidate = _required(data, "candidate")
        await self._send_to_user(call.counterparty(connection.user_id), events.CALL_ICE_CANDIDATE, {
            "callId": call.call_id,
            "userId": connection.user_id,
            "candidate": candidate,
        })
        return call

    async def decline(self, connection, data: dict) -> ActiveCall:
        call = self._pop_for_party(data.get("callId"), connection.user_id)
        call.status = "declined"
        call.end_time = utcnow()
        logger.info("Call %s declined by %s", call.call_id, connection.user_id)
        await self._send_to_user(call.counterparty(connection.user_id), events.CALL_DECLINE, {
            "callId": call.call_id,
            "userId": connection.user_id,
            "reason": data.get("reason") or "declined",
        })
        return call

    async def end(self, connection, data: dict) -> ActiveCall:
        call = self._pop_for_party(data.get("callId"), connection.user_id)
        call.status = "ended"
        call.end_time = utcnow()
        logger.info("Call %s ended by %s after %.1fs", call.call_id, connection.user_id, call.duration_seconds)
        await self._send_to_user(call.counterparty(connection.user_id), events.CALL_END, {
            "callId": call.call_id,
            "userId": connection.user_id,
            "reason": data.get("reason") or "ended",
            "duration": call.duration_seconds,
        })
        return call

    async def on_disconnect(self, user_id: int, reason: str = "disconnected") -> list[ActiveCall]:
        """Force-end every call involving ``user_id`` and notify the other party."""
        with self._lock:
            ended = [c for c in self._calls.values() if c.involves(user_id)]
            for call in ended:
                del self._calls[call.call_id]

        for call in ended:
            call.status = "ended"
            call.end_time = utcnow()
            logger.info("Call %s ended: user %s %s", call.call_id, user_id, reason)
            await self._send_to_user(call.counterparty(user_id), events.CALL_END, {
                "callId": call.call_id,
                "userId": user_id,
                "reason": reason,
                "duration": call.duration_seconds,
            })
        return ended
