"""
Type definitions for the rate limiter
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Literal


@dataclass
class RateLimiterStats:
    """Statistics from the rate limiter"""

    in_flight: int
    """Admitted requests not yet released"""

    queued: int
    """Callers waiting for admission"""

    window_count: int
    """Admissions inside the current rolling window"""

    total_admitted: int
    """Admissions since the limiter was created"""


# Event types
EventType = Literal[
    "rate:limited",
    "request:queued",
    "request:admitted",
    "request:released",
]


@dataclass
class RateLimiterEvent:
    """Event emitted by the rate limiter"""

    type: EventType
    """Event type"""

    data: dict[str, Any] = field(default_factory=dict)
    """Event-specific data"""


# Event listener type
RateLimiterEventListener = Callable[[RateLimiterEvent], None]
