"""
Concurrency and rolling-window rate limiting with a FIFO wait queue.
"""
from .types import (
    RateLimiterEvent,
    RateLimiterEventListener,
    RateLimiterStats,
)
from .limiter import RateLimiter, create_rate_limiter

__all__ = [
    # Types
    "RateLimiterEvent",
    "RateLimiterEventListener",
    "RateLimiterStats",
    # Limiter
    "RateLimiter",
    "create_rate_limiter",
]
