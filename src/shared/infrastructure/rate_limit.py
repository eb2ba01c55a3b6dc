"""
Rate Limiting
=============

Async token-bucket limiter used to pace calls to external APIs
(embedding requests during ingestion).
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket shared by all callers of one external API.

    Attributes:
        rate: Tokens refilled per second
        burst: Bucket capacity
    """

    def __init__(
        self,
        rate: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> float:
        """
        Take one token, waiting until one is available.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                delay = (1.0 - self._tokens) / self.rate
                logger.debug("Rate limit reached, waiting", extra={"delay_s": round(delay, 3)})
                await self._sleep(delay)
                waited += delay
                self._refill()
            self._tokens -= 1.0
        return waited

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None
