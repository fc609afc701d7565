import asyncio

import pytest

from src.services.opensea.limiter import TokenBucketLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_token_is_immediate():
    clock = FakeClock()
    limiter = TokenBucketLimiter(clock=clock, sleep=clock.sleep)
    asyncio.run(limiter.acquire())
    assert clock.sleeps == []
    assert clock.now == 0.0


def test_default_rate_is_one_call_per_five_seconds():
    clock = FakeClock()
    limiter = TokenBucketLimiter(clock=clock, sleep=clock.sleep)

    async def three_calls():
        for _ in range(3):
            await limiter.acquire()

    asyncio.run(three_calls())
    assert clock.now == pytest.approx(10.0)


def test_burst_up_to_capacity_then_waits():
    clock = FakeClock()
    limiter = TokenBucketLimiter(4, 2.0, clock=clock, sleep=clock.sleep)

    async def calls(n):
        for _ in range(n):
            await limiter.acquire()

    asyncio.run(calls(4))
    assert clock.now == 0.0
    asyncio.run(calls(1))
    assert clock.now == pytest.approx(0.5)


def test_refill_never_exceeds_capacity():
    clock = FakeClock()
    limiter = TokenBucketLimiter(2, 1.0, clock=clock, sleep=clock.sleep)
    clock.now = 100.0
    assert limiter.tokens == 2.0


def test_waiting_does_not_block_other_tasks():
    limiter = TokenBucketLimiter(1, 0.2)
    events = []

    async def ticker():
        for _ in range(3):
            events.append("tick")
            await asyncio.sleep(0.005)

    async def second_call():
        await limiter.acquire()
        events.append("acquired")

    async def scenario():
        await limiter.acquire()
        await asyncio.gather(second_call(), ticker())

    asyncio.run(scenario())
    assert events == ["tick", "tick", "tick", "acquired"]


@pytest.mark.parametrize("tokens,interval", [(0, 1.0), (1, 0.0), (1, -1.0)])
def test_invalid_rate_rejected(tokens, interval):
    with pytest.raises(ValueError):
        TokenBucketLimiter(tokens, interval)
