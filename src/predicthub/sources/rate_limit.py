"""Per-minute / per-hour request window for REST APIs. Backoff helper for retries."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class _Window:
    """Fixed window: at most `limit` requests per `span` seconds."""

    def __init__(self, limit: int, span: float, now: float) -> None:
        self.limit = limit
        self.span = span
        self.count = 0
        self.started = now

    def delay(self, now: float) -> float:
        if now - self.started >= self.span:
            self.count = 0
            self.started = now
        if self.count >= self.limit:
            return self.span - (now - self.started)
        return 0.0


class RequestWindow:
    """Counts requests against per-minute and per-hour limits and delays callers once full."""

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        now = clock()
        self.minute = _Window(requests_per_minute, 60.0, now)
        self.hour = _Window(requests_per_hour, 3600.0, now)
        self._lock = asyncio.Lock()

    def next_delay(self) -> float:
        """Seconds to wait before the next request is allowed (0 if allowed now)."""
        now = self._clock()
        return max(self.minute.delay(now), self.hour.delay(now))

    async def acquire(self) -> float:
        """Wait until a request slot is free, then take it. Returns seconds waited."""
        async with self._lock:
            waited = 0.0
            delay = self.next_delay()
            while delay > 0:
                await self._sleep(delay)
                waited += delay
                delay = self.next_delay()
            self.minute.count += 1
            self.hour.count += 1
            return waited


def backoff_delay(attempt: int, base_delay: float = 1.0) -> float:
    """Return delay in seconds before retry number `attempt` (0-based). Exponential backoff."""
    return base_delay * (2 ** attempt)
