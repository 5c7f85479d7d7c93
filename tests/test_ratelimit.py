"""Tests for the oracle rate limiter."""

import asyncio

import pytest

from manteia.bot.ratelimit import RateLimiter
from manteia.errors import RateLimiterClosed

from conftest import FakeClock, fast_limiter


async def _issue(limiter: RateLimiter, clock: FakeClock, n: int) -> list[float]:
    times = []
    for _ in range(n):
        await limiter.acquire()
        times.append(clock.now)
    return times


@pytest.mark.asyncio
async def test_consecutive_calls_are_spaced():
    clock = FakeClock()
    limiter = fast_limiter(clock)

    times = await _issue(limiter, clock, 5)

    gaps = [b - a for a, b in zip(times, times[1:])]
    assert all(gap >= 1.1 - 1e-9 for gap in gaps)


@pytest.mark.asyncio
async def test_first_call_does_not_wait():
    clock = FakeClock()
    limiter = fast_limiter(clock)

    await limiter.acquire()

    assert clock.now == 1000.0
    assert limiter.in_window() == 1


@pytest.mark.asyncio
async def test_exhausted_window_blocks_until_reset():
    clock = FakeClock()
    limiter = fast_limiter(clock, max_requests=3, window_seconds=10.0, min_interval=0.0)

    times = await _issue(limiter, clock, 4)

    assert times[:3] == [1000.0, 1000.0, 1000.0]
    assert times[3] == pytest.approx(1010.0)


@pytest.mark.asyncio
async def test_rolling_window_never_exceeds_budget():
    clock = FakeClock()
    limiter = fast_limiter(clock, max_requests=60, window_seconds=60.0, min_interval=1.1)

    times = await _issue(limiter, clock, 150)

    for i, start in enumerate(times):
        in_window = [t for t in times[i:] if t < start + 60.0]
        assert len(in_window) <= 60


@pytest.mark.asyncio
async def test_window_budget_binds_without_spacing():
    clock = FakeClock()
    limiter = fast_limiter(clock, max_requests=60, window_seconds=60.0, min_interval=0.0)

    times = await _issue(limiter, clock, 61)

    assert times[59] == 1000.0
    assert times[60] == pytest.approx(1060.0)


@pytest.mark.asyncio
async def test_close_releases_waiting_caller():
    limiter = RateLimiter(max_requests=1, window_seconds=60.0, min_interval=0.0)
    await limiter.acquire()

    waiter = asyncio.create_task(limiter.acquire())
    await asyncio.sleep(0.05)
    assert not waiter.done()

    limiter.close()

    with pytest.raises(RateLimiterClosed):
        await asyncio.wait_for(waiter, timeout=1.0)


def test_from_config_reads_request_delay_ms():
    limiter = RateLimiter.from_config({"max_requests_per_minute": 30, "request_delay_ms": 2000})

    assert limiter.max_requests == 30
    assert limiter.min_interval == 2.0
    assert limiter.window_seconds == 60.0
