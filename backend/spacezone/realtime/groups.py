"""
Broadcast groups ("rooms"): a mapping from group key to the live connections
that receive events sent to that group.
"""
from __future__ import annotations

import logging
import threading

from spacezone.realtime.events import envelope

logger = logging.getLogger(__name__)


class BroadcastGroups:
    def __init__(self):
        self._groups: dict[str, dict[str, object]] = {}
        self._lock = threading.RLock()

    def join(self, group: str, connection) -> None:
        with self._lock:
            self._groups.setdefault(group, {})[connection.handle] = connection
            connection.rooms.add(group)
        logger.debug("%r joined %s", connection, group)

    def leave(self, group: str, connection) -> bool:
        """Remove ``connection`` from ``group``; returns whether it was a member."""
        with self._lock:
            members = self._groups.get(group)
            connection.rooms.discard(group)
            if not members or connection.handle not in members:
                return False
            del members[connection.handle]
            if not members:
                del self._groups[group]
        logger.debug("%r left %s", connection, group)
        return True

    def groups_of(self, connection, prefix: str = "") -> list[str]:
        with self._lock:
            return [g for g in connection.rooms if g.startswith(prefix)]

    def members(self, group: str) -> list:
        with self._lock:
            return list(self._groups.get(group, {}).values())

    def is_member(self, group: str, connection) -> bool:
        with self._lock:
            return connection.handle in self._groups.get(group, {})

    async def broadcast(self, group: str, event: str, data: dict | None = None, exclude_handle: str | None = None) -> int:
        """Send ``event`` to every member of ``group`` except ``exclude_handle``. Returns the number of targets."""
        frame = envelope(event, data)
        targets = [c for c in self.members(group) if c.handle != exclude_handle]
        for connection in targets:
            await connection.send(frame)
        return len(targets)
