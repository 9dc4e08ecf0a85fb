"""
Concurrency and request-rate gate shared by every call on a client
"""
import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Deque, Optional, TypeVar

from ..config import RateLimitConfig
from .types import (
    RateLimiterEvent,
    RateLimiterEventListener,
    RateLimiterStats,
)

T = TypeVar("T")

logger = logging.getLogger("venice_core.rate_limiter")


class RateLimiter:
    """
    Admission gate for outgoing requests.

    Combines:
    - A counting semaphore: at most ``max_concurrent`` admitted, un-released callers
    - A rolling window: at most ``max_per_minute`` admissions in any
      ``window_seconds`` span (no fixed-bucket reset, so no burst at boundaries)
    - A FIFO wait queue: callers are admitted in arrival order

    The queue is drained whenever a slot is released and whenever the oldest
    admission falls out of the window.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Create a new RateLimiter.

        Args:
            config: Limits to enforce. Default: 5 concurrent, 60 per minute
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._in_flight = 0
        self._admissions: Deque[float] = deque()
        self._waiters: Deque["asyncio.Future[None]"] = deque()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._listeners: set[RateLimiterEventListener] = set()
        self._total_admitted = 0
        self._destroyed = False

    @property
    def max_concurrent(self) -> int:
        return self._config.max_concurrent

    @property
    def max_per_minute(self) -> int:
        return self._config.max_per_minute

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _emit(self, event: RateLimiterEvent) -> None:
        """Emit an event to all listeners"""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"_emit: listener failed for event {event.type}")

    def _prune(self, now: float) -> None:
        """Drop admissions that have left the rolling window"""
        horizon = now - self._config.window_seconds
        while self._admissions and self._admissions[0] <= horizon:
            self._admissions.popleft()

    def _can_admit(self) -> bool:
        self._prune(self._clock())
        return (
            self._in_flight < self._config.max_concurrent
            and len(self._admissions) < self._config.max_per_minute
        )

    def _admit(self) -> None:
        self._in_flight += 1
        self._admissions.append(self._clock())
        self._total_admitted += 1
        self._emit(
            RateLimiterEvent(
                type="request:admitted",
                data={"in_flight": self._in_flight, "window_count": len(self._admissions)},
            )
        )

    def _arm_window_timer(self) -> None:
        """Wake the queue when the oldest admission leaves the window"""
        if self._timer is not None or not self._admissions:
            return
        delay = self._admissions[0] + self._config.window_seconds - self._clock()
        self._emit(RateLimiterEvent(type="rate:limited", data={"wait_seconds": max(0.0, delay)}))
        self._timer = asyncio.get_running_loop().call_later(max(0.0, delay), self._on_window_timer)

    def _on_window_timer(self) -> None:
        self._timer = None
        self._drain()

    def _drain(self) -> None:
        """Admit queued callers in FIFO order while both limits allow"""
        while self._waiters:
            waiter = self._waiters[0]
            if waiter.done():
                # Cancelled while queued
                self._waiters.popleft()
                continue
            if not self._can_admit():
                break
            self._waiters.popleft()
            self._admit()
            waiter.set_result(None)

        if (
            self._waiters
            and self._in_flight < self._config.max_concurrent
            and len(self._admissions) >= self._config.max_per_minute
        ):
            self._arm_window_timer()

    async def acquire(self) -> None:
        """
        Wait until both limits allow another request, then take a slot.

        Every successful ``acquire()`` must be paired with one ``release()``;
        prefer ``async with limiter.slot():`` which guarantees it.

        Raises:
            RuntimeError: If the limiter has been destroyed
        """
        if self._destroyed:
            raise RuntimeError("RateLimiter has been destroyed")

        if not self._waiters and self._can_admit():
            self._admit()
            return

        waiter: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._emit(RateLimiterEvent(type="request:queued", data={"queue_size": len(self._waiters)}))
        self._drain()

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Admitted in the same tick the caller was cancelled; hand the slot back
                self.release()
            else:
                waiter.cancel()
                self._drain()
            raise

    def release(self) -> None:
        """
        Free a slot taken by ``acquire()`` and admit the next queued caller.

        Raises:
            RuntimeError: If called more often than ``acquire()``
        """
        if self._in_flight <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self._in_flight -= 1
        self._emit(RateLimiterEvent(type="request:released", data={"in_flight": self._in_flight}))
        self._drain()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Scoped admission: the slot is released on every exit path."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def add(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` once admitted, releasing the slot when it settles.

        Example:
            data = await limiter.add(lambda: client.get("/models"))
        """
        async with self.slot():
            return await fn()

    def get_stats(self) -> RateLimiterStats:
        """Get current statistics"""
        self._prune(self._clock())
        return RateLimiterStats(
            in_flight=self._in_flight,
            queued=sum(1 for waiter in self._waiters if not waiter.done()),
            window_count=len(self._admissions),
            total_admitted=self._total_admitted,
        )

    def on(self, listener: RateLimiterEventListener) -> Callable[[], None]:
        """
        Add an event listener.

        Returns:
            Function to remove the listener
        """
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def off(self, listener: RateLimiterEventListener) -> None:
        """Remove an event listener"""
        self._listeners.discard(listener)

    def destroy(self) -> None:
        """Reject queued callers and stop the window timer"""
        self._destroyed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(RuntimeError("RateLimiter destroyed"))
        self._listeners.clear()


def create_rate_limiter(
    max_concurrent: int = 5,
    max_per_minute: int = 60,
    window_seconds: float = 60.0,
) -> RateLimiter:
    """Create a new rate limiter instance"""
    return RateLimiter(
        RateLimitConfig(
            max_concurrent=max_concurrent,
            max_per_minute=max_per_minute,
            window_seconds=window_seconds,
        )
    )
