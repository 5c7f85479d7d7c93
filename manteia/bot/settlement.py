"""
Settlement targets for ``resolveMarket(marketId, outcome)``.

``HubSettlement`` calls an in-process Hub as the authorized resolver.
``HttpSettlement`` posts to an operator API that fronts the ledger.
Both raise ``AlreadyResolvedError`` when the market already has an outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

import httpx

from ..errors import AlreadyResolvedError, AuthorizationError
from ..relay.hub import Hub

logger = logging.getLogger(__name__)

TIMEOUT = 30.0


@dataclass(frozen=True)
class SettlementReceipt:
    market_id: int
    outcome: int
    reference: Optional[str] = None
    confirmed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Settlement(Protocol):
    """Where the bot sends its resolution calls."""

    async def resolve_market(self, market_id: int, outcome: int) -> SettlementReceipt:
        ...


class HubSettlement:
    """Resolve directly on an in-process Hub."""

    def __init__(self, hub: Hub, resolver: str):
        self.hub = hub
        self.resolver = resolver

    async def resolve_market(self, market_id: int, outcome: int) -> SettlementReceipt:
        await self.hub.resolve_market(market_id, outcome, caller=self.resolver)
        return SettlementReceipt(market_id=market_id, outcome=outcome, reference="hub")


class HttpSettlement:
    """
    Resolve through an operator API.

    ``POST {base_url}/markets/{id}/resolve`` with ``{"outcome": 0|1}``.
    409 means already resolved (the body may carry the settled ``outcome``),
    401/403 means the token is not the resolver's.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        hub_address: Optional[str] = None,
        timeout: float = TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"}
        if hub_address:
            headers["X-Market-Hub"] = hub_address
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    async def resolve_market(self, market_id: int, outcome: int) -> SettlementReceipt:
        url = f"{self.base_url}/markets/{market_id}/resolve"
        logger.debug("POST %s outcome=%d", url, outcome)
        resp = await self._client.post(url, json={"outcome": outcome})
        if resp.status_code == 409:
            settled = _json_body(resp).get("outcome")
            if isinstance(settled, bool) or settled not in (0, 1):
                settled = None
            raise AlreadyResolvedError(market_id, settled)
        if resp.status_code in (401, 403):
            raise AuthorizationError(f"settlement API rejected resolver credentials ({resp.status_code})")
        resp.raise_for_status()

        body = _json_body(resp)
        reference = body.get("txHash") or body.get("tx_hash")
        return SettlementReceipt(market_id=market_id, outcome=outcome, reference=reference)

    async def aclose(self) -> None:
        await self._client.aclose()


def _json_body(resp: httpx.Response) -> dict:
    """Response body as a dict; empty when it is missing or not a JSON object."""
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        logger.warning("Settlement API returned a non-JSON body (%d)", resp.status_code)
        return {}
    return body if isinstance(body, dict) else {}
