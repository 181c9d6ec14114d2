"""
Per-user operation rate limiting (message sends).

Sliding window kept in memory; one instance is owned by the application.
Keys whose attempts have all left the window are swept at most once per
window, so the map stays bounded by the users active in the last window.
"""
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict, List


class RateLimiter:
    """Simple in-memory rate limiter for per-user operations."""

    def __init__(self, max_attempts: int = 30, window_seconds: int = 60):
        self._attempts: Dict[str, List[datetime]] = {}
        self._lock = Lock()
        self._last_sweep = datetime.utcnow()
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds

    def is_allowed(self, user_id: int, operation: str) -> bool:
        """
        Check if user can perform operation within rate limit.
        Records the attempt when it is allowed.
        """
        key = f"{user_id}:{operation}"
        now = datetime.utcnow()
        window_start = now - timedelta(seconds=self.window_seconds)

        with self._lock:
            if self._last_sweep <= window_start:
                self._sweep(window_start)
                self._last_sweep = now

            attempts = [a for a in self._attempts.get(key, []) if a > window_start]

            if len(attempts) < self.max_attempts:
                attempts.append(now)
                self._attempts[key] = attempts
                return True

            self._attempts[key] = attempts
            return False

    def _sweep(self, window_start: datetime) -> int:
        stale = [k for k, v in self._attempts.items() if not any(a > window_start for a in v)]
        for key in stale:
            del self._attempts[key]
        return len(stale)

    def cleanup_old_entries(self) -> int:
        """Drop keys with no attempt left inside the window. Returns how many were removed."""
        now = datetime.utcnow()
        with self._lock:
            removed = self._sweep(now - timedelta(seconds=self.window_seconds))
            self._last_sweep = now
        return removed

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._attempts)
