"""
RateLimiter — Request budget for the content oracle.

A single player turn can fan out into several oracle requests (trigger
decision, event generation, lead checks, lore markup). The bucket keeps
that burst inside the Gemini quota instead of failing mid-turn, and
keeps a per-call-site tally of who had to wait, which is the first thing
to look at when turns feel slow.
"""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Awaitable, Callable, Dict

logger = logging.getLogger('RateLimiter')


class RateLimiter:
    """Token bucket in front of every oracle request.

    Up to `burst` requests go through at once; after that the budget
    refills at `per_minute` requests per minute and callers queue on the
    bucket in arrival order.

    Args:
        burst: Maximum number of back-to-back requests (15 on the Flash free tier).
        per_minute: Steady-state requests per minute.
        name: Label for logging.
        clock: Monotonic time source.
        sleep: Coroutine used to wait for a refill.
    """

    def __init__(
        self,
        burst: int = 15,
        per_minute: float = 15.0,
        name: str = "oracle",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        if burst < 1 or per_minute <= 0:
            raise ValueError(f"Invalid rate limit for {name}: burst={burst}, per_minute={per_minute}")
        self.burst = burst
        self.per_second = per_minute / 60.0
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._budget = float(burst)
        self._stamp = clock()
        self._lock = asyncio.Lock()
        self.waited_by_call_site: Dict[str, float] = defaultdict(float)
        self.throttled_count = 0

    def _top_up(self):
        now = self._clock()
        self._budget = min(self.burst, self._budget + (now - self._stamp) * self.per_second)
        self._stamp = now

    async def acquire(self, call_site: str = "oracle") -> float:
        """Take one request from the budget, waiting for a refill if it is spent.

        Returns:
            Seconds spent waiting (0.0 when the budget had room).
        """
        async with self._lock:
            self._top_up()
            waited = 0.0
            if self._budget < 1.0:
                waited = (1.0 - self._budget) / self.per_second
                self.throttled_count += 1
                self.waited_by_call_site[call_site] += waited
                logger.warning(f"[{self.name}] {call_site} throttled, waiting {waited:.1f}s")
                await self._sleep(waited)
                self._top_up()
            self._budget = max(0.0, self._budget - 1.0)
        return waited

    @property
    def remaining(self) -> float:
        """Requests that could go out right now without waiting."""
        self._top_up()
        return self._budget


# Shared by every oracle call site in the process; main.py reconfigures it from the environment
oracle_limiter = RateLimiter(burst=15, per_minute=15.0, name="oracle")


def configure_oracle_limiter(burst: int, per_minute: float) -> RateLimiter:
    """Replace the shared limiter's budget, keeping its tallies."""
    if burst < 1 or per_minute <= 0:
        raise ValueError(f"Invalid oracle rate limit: burst={burst}, per_minute={per_minute}")
    oracle_limiter.burst = burst
    oracle_limiter.per_second = per_minute / 60.0
    oracle_limiter._budget = min(oracle_limiter._budget, float(burst))
    return oracle_limiter
