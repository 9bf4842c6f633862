"""
Tests for the token-bucket RateLimiter that guards oracle calls.
"""

import asyncio

import pytest

from conftest import FakeClock
from tools.rate_limiter import RateLimiter, configure_oracle_limiter, oracle_limiter


class RecordingSleep:
    """Stands in for asyncio.sleep: advances the fake clock instead of waiting."""

    def __init__(self, clock):
        self.clock = clock
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)
        self.clock.advance(seconds)


def _limiter(burst=2, per_minute=60.0):
    clock = FakeClock()
    sleep = RecordingSleep(clock)
    return RateLimiter(burst=burst, per_minute=per_minute, name="test", clock=clock, sleep=sleep), clock, sleep


class TestRateLimiter:

    def test_burst_does_not_wait(self):
        async def run():
            limiter, _, sleep = _limiter(burst=3)
            waits = [await limiter.acquire("lead_check") for _ in range(3)]
            assert waits == [0.0, 0.0, 0.0]
            assert sleep.waits == []
            assert limiter.remaining == 0.0
            assert limiter.throttled_count == 0
        asyncio.run(run())

    def test_spent_budget_waits_and_tallies_call_site(self):
        async def run():
            limiter, _, sleep = _limiter(burst=1, per_minute=60.0)
            await limiter.acquire("decide_trigger")
            waited = await limiter.acquire("generate_event")
            assert waited == pytest.approx(1.0)
            assert sleep.waits == [pytest.approx(1.0)]
            assert limiter.throttled_count == 1
            assert dict(limiter.waited_by_call_site) == {"generate_event": pytest.approx(1.0)}
        asyncio.run(run())

    def test_refill_capped_at_burst(self):
        limiter, clock, _ = _limiter(burst=2)
        clock.advance(3600)
        assert limiter.remaining == 2

    def test_partial_refill(self):
        async def run():
            limiter, clock, sleep = _limiter(burst=1, per_minute=30.0)
            await limiter.acquire()
            clock.advance(1.0)
            waited = await limiter.acquire()
            assert waited == pytest.approx(1.0)
        asyncio.run(run())

    def test_invalid_budget_rejected(self):
        with pytest.raises(ValueError):
            RateLimiter(burst=0)
        with pytest.raises(ValueError):
            RateLimiter(per_minute=0)


class TestConfigureOracleLimiter:

    def test_reconfigures_shared_limiter(self):
        burst, per_second = oracle_limiter.burst, oracle_limiter.per_second
        try:
            limiter = configure_oracle_limiter(4, 120.0)
            assert limiter is oracle_limiter
            assert limiter.burst == 4
            assert limiter.per_second == pytest.approx(2.0)
            assert limiter.remaining <= 4
        finally:
            oracle_limiter.burst, oracle_limiter.per_second = burst, per_second

    def test_rejects_invalid_budget(self):
        with pytest.raises(ValueError):
            configure_oracle_limiter(0, 10.0)
