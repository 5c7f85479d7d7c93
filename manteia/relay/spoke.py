"""Spoke — origin-domain entry point that forwards orders to the Hub."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .codec import address_to_bytes32, encode_order, normalize_address
from .hub import validate_order
from .mailbox import Mailbox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchReceipt:
    """What the caller gets back after a relayed placement."""
    message_id: str
    origin_domain: int
    destination_domain: int
    recipient: str  # bytes32
    payload: bytes


class Spoke:
    """
    Stateless forwarder: encode, dispatch, return the receipt.

    Args:
        mailbox: transport endpoint on this spoke's domain.
        address: this spoke's own address (the sender the Hub trusts).
        domain: origin domain id.
        hub_domain: destination domain id.
        hub_address: Hub address on ``hub_domain``.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        address: str,
        domain: int,
        hub_domain: int,
        hub_address: str,
    ):
        self.mailbox = mailbox
        self.address = normalize_address(address)
        self.domain = domain
        self.hub_domain = hub_domain
        self.hub_address = normalize_address(hub_address)

    async def place_order(
        self, market_id: int, price: int, amount: int, is_buy: bool
    ) -> DispatchReceipt:
        """
        Forward an order to the Hub.

        Raises:
            InvalidRequestError: negative fields or zero amount.
            MailboxDispatchError: the mailbox refused the message.
        """
        validate_order(market_id, price, amount, is_buy)
        payload = encode_order(market_id, price, amount, is_buy)
        message_id = await self.mailbox.dispatch(
            self.hub_domain, self.hub_address, payload, sender=self.address,
        )
        logger.info(
            "Relayed order for market %d to domain %d (message %s)",
            market_id, self.hub_domain, message_id[:10],
        )
        return DispatchReceipt(
            message_id=message_id,
            origin_domain=self.domain,
            destination_domain=self.hub_domain,
            recipient=address_to_bytes32(self.hub_address),
            payload=payload,
        )
