"""
Sliding window rate limiter for the tasks service.
"""

import threading
from collections import deque
from typing import Any, Deque, Dict, Optional

from shared.clock import Clock
from shared.logging import get_logger


class SlidingWindowRateLimiter:
    """In-memory per-client sliding window limiter.

    Each client keeps a deque of admitted-request instants in arrival order.
    Stale instants are trimmed from the left on every check, so the deque
    only ever holds instants inside the trailing window. Rejected attempts
    are not recorded. A single lock makes the check-and-append atomic.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 5,
        clock: Optional[Clock] = None,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.clock = clock or Clock()
        self.logger = get_logger("tasks.rate_limiter")
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _evict(self, timestamps: Deque[float], now: float) -> None:
        # An instant exactly window_seconds old is still inside the window.
        cutoff = now - self.window_seconds
        while timestamps and timestamps[0] < cutoff:
            timestamps.popleft()

    def admit(self, client_id: str, now: Optional[float] = None) -> bool:
        """Record one request for client_id if it fits in the window."""
        if now is None:
            now = self.clock.monotonic()

        with self._lock:
            timestamps = self._windows.setdefault(client_id, deque())
            self._evict(timestamps, now)

            if len(timestamps) >= self.max_requests:
                self.logger.warning(
                    "Rate limit exceeded",
                    client_id=client_id,
                    current_count=len(timestamps),
                    limit=self.max_requests,
                )
                return False

            timestamps.append(now)
            return True

    def remaining(self, client_id: str, now: Optional[float] = None) -> int:
        """Requests still admissible for client_id in the current window."""
        if now is None:
            now = self.clock.monotonic()

        with self._lock:
            timestamps = self._windows.get(client_id)
            if not timestamps:
                return self.max_requests
            self._evict(timestamps, now)
            return max(0, self.max_requests - len(timestamps))

    def retry_after(self, client_id: str, now: Optional[float] = None) -> float:
        """Seconds until the oldest recorded request leaves the window."""
        if now is None:
            now = self.clock.monotonic()

        with self._lock:
            timestamps = self._windows.get(client_id)
            if not timestamps:
                return 0.0
            self._evict(timestamps, now)
            if len(timestamps) < self.max_requests:
                return 0.0
            return max(0.0, timestamps[0] + self.window_seconds - now)

    def status(self, client_id: str, now: Optional[float] = None) -> Dict[str, Any]:
        """Get current rate limit status for a client."""
        remaining = self.remaining(client_id, now)
        return {
            "limit": self.max_requests,
            "remaining": remaining,
            "current_count": self.max_requests - remaining,
            "window_seconds": self.window_seconds,
        }

    def reset(self, client_id: str) -> None:
        """Forget every recorded request for client_id."""
        with self._lock:
            self._windows.pop(client_id, None)
        self.logger.info("Rate limit reset", client_id=client_id)
