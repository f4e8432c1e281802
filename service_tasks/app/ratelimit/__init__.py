"""
Rate limiting package for the tasks service.

Holds the in-process sliding-window limiter that enforces a per-client
request budget over a trailing time window.
"""

from .sliding_window import SlidingWindowRateLimiter

__all__ = ["SlidingWindowRateLimiter"]
