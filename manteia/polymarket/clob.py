"""
CLOB API client for Polymarket market status.

Domain-agnostic — works with any Polymarket condition ID.

Endpoints used (all public, no auth):
  GET /markets/{condition_id}    -- single market (primary source)
  GET /simplified-markets        -- paged list of markets, reduced fields
  GET /sampling-markets          -- paged list of reward-eligible markets

Every request waits on the shared RateLimiter first.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..bot.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

CLOB_BASE = "https://clob.polymarket.com"
TIMEOUT = 30.0
HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


class ClobClient:
    """Thin async wrapper over the public CLOB endpoints."""

    def __init__(
        self,
        limiter: RateLimiter,
        base_url: str = CLOB_BASE,
        timeout: float = TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.limiter = limiter
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, headers=HEADERS, transport=transport)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Issue a rate-limited GET to the CLOB API and return parsed JSON."""
        await self.limiter.acquire()
        url = f"{self.base_url}{path}"
        logger.debug("GET %s params=%s", url, params)
        resp = await self._client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Markets ──────────────────────────────────────────────────────

    async def get_market(self, condition_id: str) -> Any:
        """
        Get a single market by condition ID.

        Returns:
            {"condition_id": "0x...", "closed": true,
             "tokens": [{"outcome": "Yes", "winner": true, ...}, ...], ...}
        """
        return await self._get(f"/markets/{condition_id}")

    async def get_simplified_markets(self, next_cursor: str | None = None) -> Any:
        """One page of ``/simplified-markets`` (``{"data": [...], "next_cursor": ...}``)."""
        params = {"next_cursor": next_cursor} if next_cursor else None
        return await self._get("/simplified-markets", params=params)

    async def get_sampling_markets(self, next_cursor: str | None = None) -> Any:
        """One page of ``/sampling-markets``."""
        params = {"next_cursor": next_cursor} if next_cursor else None
        return await self._get("/sampling-markets", params=params)


def market_list(page: Any) -> list[dict]:
    """Extract the market list from a page in any of the known envelopes."""
    if isinstance(page, list):
        return [m for m in page if isinstance(m, dict)]
    if isinstance(page, dict):
        for key in ("data", "markets"):
            items = page.get(key)
            if isinstance(items, list):
                return [m for m in items if isinstance(m, dict)]
    return []


def find_market(page: Any, condition_id: str) -> Optional[dict]:
    """Find ``condition_id`` in a market list page (case-insensitive hex)."""
    wanted = condition_id.lower()
    for market in market_list(page):
        cid = market.get("condition_id") or market.get("conditionId")
        if isinstance(cid, str) and cid.lower() == wanted:
            return market
    return None
