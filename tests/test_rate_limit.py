"""Tests for the token bucket rate limiter."""

import pytest

from src.shared.infrastructure.rate_limit import RateLimiter


class FakeClock:
    """Manual clock; sleeping advances time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_burst_is_free_then_waits(clock):
    limiter = RateLimiter(rate=2.0, burst=2, clock=clock, sleep=clock.sleep)

    assert await limiter.acquire() == 0.0
    assert await limiter.acquire() == 0.0
    waited = await limiter.acquire()

    assert waited == pytest.approx(0.5)
    assert clock.sleeps == [pytest.approx(0.5)]


@pytest.mark.asyncio
async def test_tokens_refill_over_time(clock):
    limiter = RateLimiter(rate=1.0, burst=1, clock=clock, sleep=clock.sleep)
    await limiter.acquire()

    clock.now += 5.0

    assert await limiter.acquire() == 0.0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_context_manager_takes_a_token(clock):
    limiter = RateLimiter(rate=1.0, burst=1, clock=clock, sleep=clock.sleep)

    async with limiter:
        pass
    async with limiter:
        pass

    assert clock.sleeps == [pytest.approx(1.0)]


@pytest.mark.parametrize("rate,burst", [(0, 1), (-1.0, 1), (1.0, 0)])
def test_invalid_arguments(rate, burst):
    with pytest.raises(ValueError):
        RateLimiter(rate=rate, burst=burst)
