"""Bounded-parallelism gate for every external provider call."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, TypeVar

import structlog

from ..errors import InvalidConfigError

T = TypeVar("T")

DEFAULT_LIMIT = 3


@dataclass(frozen=True, slots=True)
class LimiterStats:
    running: int
    queued: int
    limit: int


class ConcurrencyLimiter:
    """Counting semaphore with a strict FIFO wait queue.

    ``release`` hands a freed slot straight to the longest-waiting task, so
    late arrivals can never overtake queued callers. The running counter and
    the queue are only mutated inside ``acquire`` and ``release``.
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        name: str = "default",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidConfigError(f"Concurrency limit must be a positive integer, got {limit!r}")
        self.name = name
        self._limit = limit
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self.logger = logger or structlog.get_logger("trip_curator.limiter")

    @property
    def limit(self) -> int:
        return self._limit

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------
    async def acquire(self) -> None:
        if self._running < self._limit and not self._pending_waiters():
            self._running += 1
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # slot was already handed over; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        if self._running <= 0:
            self.logger.warning("limiter_release_without_acquire", limiter=self.name)
            return
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._running -= 1

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        await self.acquire()
        try:
            return await fn(*args, **kwargs)
        finally:
            self.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    def _pending_waiters(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def get_stats(self) -> LimiterStats:
        return LimiterStats(running=self._running, queued=self._pending_waiters(), limit=self._limit)

    def is_available(self) -> bool:
        return self._running < self._limit and not self._pending_waiters()


class LimiterPool:
    """Hand out the shared limiter and lazily created per-provider limiters."""

    def __init__(self, default_limit: int = DEFAULT_LIMIT, per_provider: Dict[str, int] | None = None) -> None:
        self.default_limit = default_limit
        self._default = ConcurrencyLimiter(default_limit, name="shared")
        self._overrides = dict(per_provider or {})
        self._limiters: Dict[str, ConcurrencyLimiter] = {}
        self._lock = Lock()

    def get(self, provider: str | None = None, limit: int | None = None) -> ConcurrencyLimiter:
        """Return the limiter for ``provider``.

        Providers without an explicit limit share the default limiter.
        """

        if provider is None:
            return self._default
        with self._lock:
            if provider not in self._limiters:
                size = limit or self._overrides.get(provider)
                if size is None:
                    return self._default
                self._limiters[provider] = ConcurrencyLimiter(size, name=provider)
            return self._limiters[provider]

    def stats(self) -> Dict[str, LimiterStats]:
        with self._lock:
            snapshot = {name: limiter.get_stats() for name, limiter in self._limiters.items()}
        snapshot["shared"] = self._default.get_stats()
        return snapshot


__all__ = ["ConcurrencyLimiter", "DEFAULT_LIMIT", "LimiterPool", "LimiterStats"]
