from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


_EPSILON = 1e-9


class TokenBucketLimiter:
    """Async token bucket shared by every outbound call of a session.

    The bucket holds at most ``tokens_per_interval`` tokens and refills
    continuously at ``tokens_per_interval / interval`` tokens per second.
    The default is one call every five seconds.
    """

    def __init__(
        self,
        tokens_per_interval: int = 1,
        interval: float = 5.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if tokens_per_interval < 1:
            raise ValueError("tokens_per_interval must be >= 1")
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.capacity = float(tokens_per_interval)
        self.rate = tokens_per_interval / interval
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._updated = clock()
        self._lock = asyncio.Lock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1 - _EPSILON:
                    self._tokens = max(0.0, self._tokens - 1)
                    return
                await self._sleep((1 - self._tokens) / self.rate)
