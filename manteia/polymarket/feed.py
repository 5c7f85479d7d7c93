"""
Oracle feed with fallbacks.

Primary source is the CLOB ``/markets/{id}`` endpoint.  If that fails
(network error, non-2xx, malformed body) the secondary sources are tried in
order: CLOB ``/simplified-markets``, CLOB ``/sampling-markets``, then Gamma.
When all of them fail the market is reported unavailable for this cycle.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from .clob import ClobClient, find_market
from .gamma import GammaClient
from .models import MarketReport
from ..errors import OracleUnavailableError

logger = logging.getLogger(__name__)

STATUS_FIELDS = ("closed", "resolved", "is_resolved", "status", "umaResolutionStatus")


class MalformedResponse(ValueError):
    """The endpoint answered 2xx but the body is not a usable market."""


class OracleFeed:
    """Fetch one market's raw status, trying each source until one answers."""

    def __init__(self, clob: ClobClient, gamma: Optional[GammaClient] = None):
        self.clob = clob
        self.gamma = gamma

    def _sources(self, market_id: str) -> list[tuple[str, Callable[[], Awaitable[Any]]]]:
        sources: list[tuple[str, Callable[[], Awaitable[Any]]]] = [
            ("clob-market", lambda: self._primary(market_id)),
            ("simplified", lambda: self._listed(self.clob.get_simplified_markets, market_id)),
            ("sampling", lambda: self._listed(self.clob.get_sampling_markets, market_id)),
        ]
        if self.gamma is not None:
            sources.append(("gamma", lambda: self._gamma(market_id)))
        return sources

    async def fetch(self, market_id: str) -> MarketReport:
        """
        Return the first usable report for ``market_id``.

        Raises:
            OracleUnavailableError: every source failed.
        """
        errors: list[str] = []
        for source, call in self._sources(market_id):
            try:
                data = await call()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("%s lookup failed for %s: %s", source, market_id, e)
                errors.append(f"{source}: {e}")
                continue
            if source != "clob-market":
                logger.info("Market %s served by fallback source %s", market_id, source)
            return MarketReport(market_id=market_id, source=source, data=data)
        raise OracleUnavailableError(market_id, errors)

    async def aclose(self) -> None:
        await self.clob.aclose()
        if self.gamma is not None:
            await self.gamma.aclose()

    # ── Sources ──────────────────────────────────────────────────────

    async def _primary(self, market_id: str) -> dict:
        data = await self.clob.get_market(market_id)
        if not isinstance(data, dict) or not data:
            raise MalformedResponse(f"unexpected body type {type(data).__name__}")
        return check_market_shape(data, market_id)

    @staticmethod
    async def _listed(fetch_page: Callable[[], Awaitable[Any]], market_id: str) -> dict:
        page = await fetch_page()
        market = find_market(page, market_id)
        if market is None:
            raise MalformedResponse("market not in listing")
        return market

    async def _gamma(self, market_id: str) -> dict:
        market = await self.gamma.get_market_by_condition_id(market_id)
        if not isinstance(market, dict) or not market:
            raise MalformedResponse("market not found on gamma")
        return check_market_shape(market, market_id)


def check_market_shape(data: dict, market_id: str) -> dict:
    """
    Accept ``data`` only if it looks like the status of ``market_id``.

    A body carrying a condition id must carry this market's (case-insensitive).
    A body without one must carry at least one status field.
    """
    condition_id = data.get("condition_id") or data.get("conditionId")
    if condition_id is not None:
        if str(condition_id).lower() != str(market_id).lower():
            raise MalformedResponse(f"body is for market {condition_id}")
        return data
    if not any(f in data for f in STATUS_FIELDS):
        raise MalformedResponse(f"no market status in body (keys: {', '.join(sorted(data)) or 'none'})")
    return data
