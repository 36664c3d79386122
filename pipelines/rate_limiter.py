"""Per-origin minimum-delay gate shared by all crawl activity."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from app.config import settings
from pipelines.cancellation import CancellationToken

logger = logging.getLogger("pipelines.rate_limiter")

Clock = Callable[[], float]
SleepFn = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Spaces requests to the same origin by at least `min_interval` seconds.

    Each origin key has its own lock, so callers hitting unrelated origins never
    wait on each other while callers sharing an origin serialize at the interval
    boundary.
    """

    def __init__(
        self,
        min_interval: float | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        interval = settings.crawl_request_delay_ms / 1000 if min_interval is None else min_interval
        if interval < 0:
            raise ValueError("min_interval must be >= 0")
        self._interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def min_interval(self) -> float:
        return self._interval

    def _lock_for(self, origin: str) -> asyncio.Lock:
        lock = self._locks.get(origin)
        if lock is None:
            lock = self._locks[origin] = asyncio.Lock()
        return lock

    async def wait(self, origin: str, token: CancellationToken | None = None) -> None:
        """Block until `origin` may be contacted again, then record the request."""
        key = origin.lower()
        async with self._lock_for(key):
            last = self._last_request.get(key)
            if last is not None:
                delay = self._interval - (self._clock() - last)
                if delay > 0:
                    logger.debug("rate_limiter.wait", extra={"origin": key, "delay_ms": round(delay * 1000, 2)})
                    if token is not None:
                        await token.sleep(delay)
                    else:
                        await self._sleep(delay)
            self._last_request[key] = self._clock()

    def reset(self) -> None:
        self._last_request.clear()
        self._locks.clear()
