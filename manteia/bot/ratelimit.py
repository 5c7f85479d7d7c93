"""
Outbound request gate for the oracle API.

Two rules, both enforced on every ``acquire``:
  - at most ``max_requests`` calls in any rolling ``window_seconds``
  - at least ``min_interval`` seconds between consecutive calls

Callers never get an error for being over budget; they wait.  The wait is
bounded by the window length and ends early with ``RateLimiterClosed`` once
``close()`` is called.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque

from ..errors import RateLimiterClosed

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 60
DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MIN_INTERVAL = 1.1


class RateLimiter:
    """Rolling-window limiter shared by all oracle calls."""

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._issued: Deque[float] = deque()
        self._lock = asyncio.Lock()
        self._closed = asyncio.Event()

    @classmethod
    def from_config(cls, cfg: dict) -> "RateLimiter":
        return cls(
            max_requests=cfg.get("max_requests_per_minute", DEFAULT_MAX_REQUESTS),
            window_seconds=cfg.get("window_seconds", DEFAULT_WINDOW_SECONDS),
            min_interval=cfg.get("request_delay_ms", DEFAULT_MIN_INTERVAL * 1000) / 1000,
        )

    # ── Public API ───────────────────────────────────────────────────

    async def acquire(self) -> None:
        """Wait for a slot, then record the call as issued."""
        async with self._lock:
            while True:
                if self._closed.is_set():
                    raise RateLimiterClosed("rate limiter closed")
                delay = self._delay(self._clock())
                if delay <= 0:
                    break
                logger.debug("Rate limit wait %.2fs (%d in window)", delay, len(self._issued))
                await self._pause(delay)
            self._issued.append(self._clock())

    def close(self) -> None:
        """Release every waiter with ``RateLimiterClosed``."""
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def in_window(self) -> int:
        """Number of calls issued inside the current rolling window."""
        self._evict(self._clock())
        return len(self._issued)

    # ── Internals ────────────────────────────────────────────────────

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._issued and self._issued[0] <= cutoff:
            self._issued.popleft()

    def _delay(self, now: float) -> float:
        """Seconds until the next call is allowed (<= 0 means now)."""
        self._evict(now)
        delay = 0.0
        if self._issued:
            delay = self._issued[-1] + self.min_interval - now
        if len(self._issued) >= self.max_requests:
            delay = max(delay, self._issued[0] + self.window_seconds - now)
        return delay

    async def _pause(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
