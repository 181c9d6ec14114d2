"""
Login throttling.
Slows down password guessing per email using exponential backoff.
"""
import time
from collections import defaultdict
from threading import Lock

from spacezone.core.errors import RateLimited


class LoginThrottle:
    """
    Tracks failed attempts per key (email) and enforces a growing delay
    once ``max_attempts`` consecutive failures have been recorded.
    """

    def __init__(self, max_attempts: int = 5, base_delay: float = 2.0, max_delay: float = 300.0):
        self._attempts = defaultdict(lambda: {"count": 0, "last_time": 0.0})
        self._lock = Lock()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    def _required_delay(self, count: int) -> float:
        return min(self.base_delay * (2 ** (count - self.max_attempts)), self.max_delay)

    def retry_after(self, key: str) -> float:
        """Seconds to wait before the next attempt; 0 when allowed."""
        with self._lock:
            entry = self._attempts[key]
            if entry["count"] < self.max_attempts:
                return 0.0
            elapsed = time.time() - entry["last_time"]
            return max(0.0, self._required_delay(entry["count"]) - elapsed)

    def check(self, key: str) -> None:
        delay = self.retry_after(key)
        if delay > 0:
            raise RateLimited(f"Too many login attempts. Try again in {int(delay) + 1} seconds.")

    def record(self, key: str, success: bool = False) -> None:
        with self._lock:
            entry = self._attempts[key]
            entry["last_time"] = time.time()
            if success:
                entry["count"] = 0
            else:
                entry["count"] += 1


login_throttle = LoginThrottle()
