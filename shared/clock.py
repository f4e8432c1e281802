"""
Time source shared by logging and rate limiting.
"""

import time
from datetime import datetime, timezone


class Clock:
    """System clock.

    ``monotonic()`` drives rate-limit windows and never goes backwards;
    ``now()`` is wall-clock UTC for log lines.
    """

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def format_log_time(value: datetime) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SS`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S")
