"""
Gamma API client for Polymarket market lookup and discovery.

Endpoints used (all public, no auth):
  GET /markets?condition_ids=X   -- market(s) by condition id
  GET /events?...                -- events, for discovery
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..bot.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

GAMMA_BASE = "https://gamma-api.polymarket.com"
TIMEOUT = 30.0


class GammaClient:
    """Async client for the Gamma API, sharing the oracle rate limiter."""

    def __init__(
        self,
        limiter: RateLimiter,
        base_url: str = GAMMA_BASE,
        timeout: float = TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.limiter = limiter
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Issue a rate-limited GET to the Gamma API and return parsed JSON."""
        await self.limiter.acquire()
        url = f"{self.base_url}{path}"
        logger.debug("GET %s params=%s", url, params)
        resp = await self._client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_market_by_condition_id(self, condition_id: str) -> dict | None:
        """Fetch a single market by condition id (Gamma shape)."""
        results = await self._get("/markets", params={"condition_ids": condition_id})
        if isinstance(results, list) and results:
            return results[0]
        if isinstance(results, dict) and results:
            return results
        return None

    async def list_events(
        self,
        *,
        active: bool = True,
        closed: bool = False,
        limit: int = 50,
        order: str = "id",
        ascending: bool = False,
    ) -> list[dict]:
        params: dict[str, Any] = {
            "active": str(active).lower(),
            "closed": str(closed).lower(),
            "limit": limit,
            "order": order,
            "ascending": str(ascending).lower(),
        }
        result = await self._get("/events", params=params)
        return result if isinstance(result, list) else []

    async def search_events(self, query: str, limit: int = 20, closed: bool = False) -> list[dict]:
        """
        Text search across events.

        Falls back to fetching recent events and filtering client-side
        if the slug search doesn't return useful results.
        """
        try:
            result = await self._get("/events", params={
                "slug_contains": query.lower().replace(" ", "-"),
                "closed": str(closed).lower(),
                "limit": limit,
            })
            if result:
                return result if isinstance(result, list) else [result]
        except httpx.HTTPStatusError:
            logger.debug("Slug search failed for %r, falling back", query)

        events = await self.list_events(closed=closed, limit=200)
        q = query.lower()
        return [
            e for e in events
            if q in e.get("title", "").lower()
            or q in e.get("slug", "").lower()
        ][:limit]
