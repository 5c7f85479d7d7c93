"""
Hub — destination-domain order book and settlement authority.

Order state is keyed by ``(market_id, user)`` with last-write-wins.  It is
mutated through two entry points only: ``place_order`` (direct, local) and
``handle_message`` (relayed, called by the mailbox).  Both apply the same
overwrite rule, so a duplicate delivery re-writes identical values.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from typing import Optional

from .codec import decode_message, normalize_address
from ..errors import (
    AlreadyResolvedError,
    AuthorizationError,
    InvalidRequestError,
)

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"
CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class Order:
    """A single resting order."""
    market_id: int
    user: str
    price: int
    amount: int
    is_buy: bool
    status: str = ACTIVE  # "ACTIVE" or "CANCELLED"
    source: str = "local"  # "local" or "relay"

    @property
    def key(self) -> tuple[int, str]:
        return (self.market_id, self.user)

    def to_dict(self) -> dict:
        return asdict(self)


def validate_order(market_id: int, price: int, amount: int, is_buy: bool) -> None:
    """Reject negative fields and zero amount."""
    for name, value in (("market_id", market_id), ("price", price), ("amount", amount)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRequestError(f"{name} must be an integer")
        if value < 0:
            raise InvalidRequestError(f"{name} must not be negative: {value}")
    if amount == 0:
        raise InvalidRequestError("amount must be greater than zero")
    if not isinstance(is_buy, bool):
        raise InvalidRequestError("is_buy must be a bool")


class Hub:
    """
    Canonical order book plus market resolution.

    Args:
        resolver: identity allowed to call ``resolve_market``.
        domain: the destination domain this hub lives on.
    """

    def __init__(self, resolver: str, domain: int = 0):
        self.resolver = normalize_address(resolver)
        self.domain = domain
        self._orders: dict[tuple[int, str], Order] = {}
        self._outcomes: dict[int, int] = {}
        self._trusted_spokes: dict[int, str] = {}
        self._lock = asyncio.Lock()

    # ── Configuration ────────────────────────────────────────────────

    def enroll_spoke(self, origin_domain: int, spoke_address: str) -> None:
        """Trust ``spoke_address`` as the only sender for ``origin_domain``."""
        self._trusted_spokes[int(origin_domain)] = normalize_address(spoke_address)
        logger.info("Enrolled spoke %s for domain %d", spoke_address, origin_domain)

    def trusted_spoke(self, origin_domain: int) -> Optional[str]:
        return self._trusted_spokes.get(int(origin_domain))

    # ── Order entry ──────────────────────────────────────────────────

    async def _write(self, order: Order) -> Order:
        async with self._lock:
            self._orders[order.key] = order
        return order

    async def place_order(
        self, market_id: int, price: int, amount: int, is_buy: bool, *, caller: str
    ) -> Order:
        """Place (or overwrite) the caller's order on ``market_id``."""
        validate_order(market_id, price, amount, is_buy)
        order = Order(
            market_id=market_id,
            user=normalize_address(caller),
            price=price,
            amount=amount,
            is_buy=is_buy,
        )
        await self._write(order)
        logger.info(
            "Order placed: market %d user %s %s %d @ %d",
            market_id, order.user, "BUY" if is_buy else "SELL", amount, price,
        )
        return order

    async def handle_message(
        self, origin_domain: int, sender: str, payload: bytes, *, caller: str
    ) -> Order:
        """
        Apply a relayed order.

        Raises:
            AuthorizationError: ``sender`` is not the trusted spoke for ``origin_domain``.
            DecodeError: the payload is not a valid RelayMessage.
        """
        trusted = self._trusted_spokes.get(int(origin_domain))
        try:
            sender_address = normalize_address(sender)
        except InvalidRequestError:
            sender_address = None
        if trusted is None or sender_address != trusted:
            logger.warning(
                "Rejected message from %s on domain %s (trusted: %s)",
                sender, origin_domain, trusted,
            )
            raise AuthorizationError(
                f"sender {sender} is not the trusted spoke for domain {origin_domain}"
            )

        message = decode_message(payload)
        order = Order(
            market_id=message.market_id,
            user=normalize_address(caller),
            price=message.price,
            amount=message.amount,
            is_buy=message.is_buy,
            source="relay",
        )
        await self._write(order)
        logger.info(
            "Relayed order applied: market %d user %s from domain %d",
            order.market_id, order.user, origin_domain,
        )
        return order

    async def cancel_order(self, market_id: int, *, caller: str) -> Order:
        """Tombstone the caller's order on ``market_id``."""
        key = (market_id, normalize_address(caller))
        async with self._lock:
            existing = self._orders.get(key)
            if existing is None:
                raise InvalidRequestError(f"no order for market {market_id} and {key[1]}")
            cancelled = replace(existing, status=CANCELLED)
            self._orders[key] = cancelled
        logger.info("Order cancelled: market %d user %s", market_id, key[1])
        return cancelled

    # ── Resolution ───────────────────────────────────────────────────

    async def resolve_market(self, market_id: int, outcome: int, *, caller: str) -> int:
        """
        Record the canonical outcome for ``market_id`` (once).

        Raises:
            AuthorizationError: caller is not the resolver.
            InvalidRequestError: outcome is not 0 or 1.
            AlreadyResolvedError: the market already has an outcome.
        """
        if normalize_address(caller) != self.resolver:
            raise AuthorizationError(f"{caller} is not the authorized resolver")
        if outcome not in (0, 1) or isinstance(outcome, bool):
            raise InvalidRequestError(f"outcome must be 0 or 1, got {outcome!r}")

        async with self._lock:
            if market_id in self._outcomes:
                raise AlreadyResolvedError(market_id, self._outcomes[market_id])
            self._outcomes[market_id] = outcome

        logger.info("Market %d resolved: %s", market_id, "YES" if outcome == 1 else "NO")
        return outcome

    # ── Queries ──────────────────────────────────────────────────────

    def get_order(self, market_id: int, user: str) -> Optional[Order]:
        return self._orders.get((market_id, normalize_address(user)))

    def get_active_orders(
        self, market_id: Optional[int] = None, user: Optional[str] = None
    ) -> list[Order]:
        """Active orders, optionally filtered by market and/or user."""
        wanted_user = normalize_address(user) if user else None
        return [
            o for o in self._orders.values()
            if o.status == ACTIVE
            and (market_id is None or o.market_id == market_id)
            and (wanted_user is None or o.user == wanted_user)
        ]

    def market_resolved(self, market_id: int) -> bool:
        return market_id in self._outcomes

    def market_outcome(self, market_id: int) -> Optional[int]:
        return self._outcomes.get(market_id)

    def snapshot(self) -> dict[tuple[int, str], Order]:
        """Copy of the full order book, for comparisons."""
        return dict(self._orders)
