"""ADLEDGER — Hourly Call Budget.

Meta allows a fixed number of calls per account per hour. `CallBudget`
counts calls in a rolling window and, once the budget is spent, sleeps
until the window resets instead of failing the sync.

Each orchestrator owns its own budget, so two sync runs never share a
counter by accident.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from adledger.config import settings
from adledger.core.logging import get_logger

logger = get_logger("meta.rate_limiter")


class CallBudget:
    """Rolling per-window call counter with an awaited cool-down."""

    def __init__(
        self,
        calls_per_hour: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.calls_per_hour = calls_per_hour or settings.rate_limit_calls_per_hour
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self._clock = clock
        self._sleep = sleep
        self.window_started = clock()
        self.calls_made = 0
        self.total_calls = 0

    @property
    def remaining(self) -> int:
        self._roll_window()
        return max(0, self.calls_per_hour - self.calls_made)

    def _roll_window(self) -> None:
        if self._clock() - self.window_started >= self.window_seconds:
            self.window_started = self._clock()
            self.calls_made = 0

    async def acquire(self) -> None:
        """Account for one upstream call, waiting out the window if spent."""
        self._roll_window()
        if self.calls_made >= self.calls_per_hour:
            wait = self.window_seconds - (self._clock() - self.window_started)
            if wait > 0:
                logger.warning(
                    f"Call budget of {self.calls_per_hour}/window spent. "
                    f"Sleeping {wait:.0f}s until reset",
                    extra={"count": self.calls_made, "duration_ms": wait * 1000},
                )
                await self._sleep(wait)
            self.window_started = self._clock()
            self.calls_made = 0

        self.calls_made += 1
        self.total_calls += 1
