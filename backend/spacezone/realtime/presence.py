"""
Presence tracking: which users hold at least one live connection.

A user goes online with their first connection. When the last connection
closes the user is only pending-offline; ``offline_delay`` seconds later the
entry is dropped and ``on_offline`` fires, unless a connection re-registered
in between. The tracker is owned by the application and torn down with
``shutdown()``.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from spacezone.db.base import utcnow
from spacezone.schemas.common import iso

logger = logging.getLogger(__name__)

OfflineCallback = Callable[[int, datetime], Awaitable[None]]


@dataclass
class PresenceEntry:
    user_id: int
    profile: dict
    last_seen: datetime = field(default_factory=utcnow)
    handles: set = field(default_factory=set)

    @property
    def is_online(self) -> bool:
        return bool(self.handles)

    def to_payload(self) -> dict:
        return {
            "userId": self.user_id,
            "user": self.profile,
            "isOnline": self.is_online,
            "lastSeen": iso(self.last_seen),
        }


class PresenceTracker:
    def __init__(self, offline_delay: float = 5.0, on_offline: Optional[OfflineCallback] = None):
        self.offline_delay = offline_delay
        self.on_offline = on_offline
        self._entries: dict[int, PresenceEntry] = {}
        self._connections: dict[str, object] = {}
        self._offline_timers: dict[int, asyncio.Task] = {}
        self._lock = threading.RLock()

    def register(self, connection) -> bool:
        """Add a live connection. Returns True when this is the user's first live handle."""
        with self._lock:
            timer = self._offline_timers.pop(connection.user_id, None)
            if timer is not None:
                timer.cancel()
                logger.debug("User %s reconnected within the offline grace period", connection.user_id)

            entry = self._entries.get(connection.user_id)
            if entry is None:
                entry = PresenceEntry(user_id=connection.user_id, profile=connection.profile)
                self._entries[connection.user_id] = entry
            first = not entry.handles

            entry.handles.add(connection.handle)
            entry.profile = connection.profile
            entry.last_seen = utcnow()
            self._connections[connection.handle] = connection

        if first:
            logger.info("User %s online", connection.user_id)
        return first

    def deregister(self, connection) -> bool:
        """
        Remove a connection. Returns True when it was the user's last live
        handle and the offline timer has been started.
        """
        with self._lock:
            self._connections.pop(connection.handle, None)
            entry = self._entries.get(connection.user_id)
            if entry is None or connection.handle not in entry.handles:
                return False

            entry.handles.discard(connection.handle)
            entry.last_seen = utcnow()
            if entry.handles:
                return False

            previous = self._offline_timers.pop(connection.user_id, None)
            if previous is not None:
                previous.cancel()
            self._offline_timers[connection.user_id] = asyncio.get_running_loop().create_task(
                self._expire(connection.user_id)
            )

        logger.debug("User %s pending offline", connection.user_id)
        return True

    async def _expire(self, user_id: int) -> None:
        await asyncio.sleep(self.offline_delay)

        with self._lock:
            if self._offline_timers.get(user_id) is asyncio.current_task():
                del self._offline_timers[user_id]
            entry = self._entries.get(user_id)
            if entry is None or entry.handles:
                return
            del self._entries[user_id]
            last_seen = entry.last_seen

        logger.info("User %s offline", user_id)
        if self.on_offline is not None:
            await self.on_offline(user_id, last_seen)

    def lookup(self, user_id: int) -> list:
        """Live connections of ``user_id`` (empty when offline or pending-offline)."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return []
            return [self._connections[h] for h in entry.handles if h in self._connections]

    def is_online(self, user_id: int) -> bool:
        with self._lock:
            entry = self._entries.get(user_id)
            return entry is not None and entry.is_online

    def is_pending_offline(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._offline_timers

    def online_users(self) -> list[dict]:
        with self._lock:
            return [e.to_payload() for e in self._entries.values() if e.is_online]

    def all_connections(self) -> list:
        with self._lock:
            return list(self._connections.values())

    def shutdown(self) -> None:
        """Cancel pending offline timers and forget every entry."""
        with self._lock:
            timers = list(self._offline_timers.values())
            self._offline_timers.clear()
            self._entries.clear()
            self._connections.clear()
        for timer in timers:
            timer.cancel()
        logger.info("Presence tracker shut down (%d pending timers cancelled)", len(timers))
