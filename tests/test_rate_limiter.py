"""Tests for the hourly call budget."""

import pytest
from unittest.mock import AsyncMock

from adledger.connectors.meta.rate_limiter import CallBudget


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_calls_within_budget_do_not_sleep():
    sleep = AsyncMock()
    budget = CallBudget(calls_per_hour=3, window_seconds=3600, clock=FakeClock(), sleep=sleep)

    for _ in range(3):
        await budget.acquire()

    sleep.assert_not_awaited()
    assert budget.remaining == 0


@pytest.mark.asyncio
async def test_exhausted_budget_sleeps_until_reset():
    """The call past the budget waits out the rest of the window."""
    clock = FakeClock()
    sleep = AsyncMock()
    budget = CallBudget(calls_per_hour=2, window_seconds=3600, clock=clock, sleep=sleep)

    await budget.acquire()
    clock.now = 600.0
    await budget.acquire()
    await budget.acquire()

    sleep.assert_awaited_once_with(3000.0)
    assert budget.calls_made == 1
    assert budget.total_calls == 3


@pytest.mark.asyncio
async def test_window_rolls_over():
    clock = FakeClock()
    sleep = AsyncMock()
    budget = CallBudget(calls_per_hour=1, window_seconds=60, clock=clock, sleep=sleep)

    await budget.acquire()
    clock.now = 61.0
    await budget.acquire()

    sleep.assert_not_awaited()


def test_budgets_do_not_share_state():
    first = CallBudget(calls_per_hour=5, clock=FakeClock())
    second = CallBudget(calls_per_hour=5, clock=FakeClock())
    first.calls_made = 5
    assert second.remaining == 5
