"""
Cross-domain mailbox.

``Mailbox`` is the transport contract the Spoke dispatches through.
``InMemoryMailbox`` is an in-process transport spanning every domain: it
queues dispatched messages and later delivers them to the registered
recipient's ``handle_message``.  Delivery is at-least-once and does not
suppress duplicates; recipients must be idempotent.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Optional, Protocol

from .codec import address_to_bytes32, normalize_address
from ..errors import MailboxDispatchError, ManteiaError

logger = logging.getLogger(__name__)


class Recipient(Protocol):
    """Anything that can receive a delivered message (the Hub)."""

    def handle_message(
        self, origin_domain: int, sender: str, payload: bytes, *, caller: str
    ) -> Awaitable[object]:
        ...


class Mailbox(Protocol):
    """Transport seen by a dispatcher on one origin domain."""

    async def dispatch(
        self, destination_domain: int, recipient: str, payload: bytes, *, sender: str
    ) -> str:
        """Accept a message for eventual delivery and return its id."""
        ...


@dataclass
class Envelope:
    """A dispatched message travelling between domains."""
    message_id: str
    origin_domain: int
    sender: str  # bytes32
    destination_domain: int
    recipient: str  # bytes32
    payload: bytes
    dispatched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: int = 0


@dataclass(frozen=True)
class DeliveryResult:
    message_id: str
    delivered: bool
    error: Optional[str] = None


class InMemoryMailbox:
    """
    Single-process transport for every registered domain.

    ``endpoint(domain)`` gives the ``Mailbox`` view a Spoke on that domain
    dispatches through.  ``process_all`` / ``serve`` deliver queued messages.
    """

    def __init__(self, relayer: str = "0x" + "00" * 19 + "01"):
        # Identity that triggers delivery on the destination domain.
        self.relayer = normalize_address(relayer)
        self._recipients: dict[tuple[int, str], Recipient] = {}
        self._domains: set[int] = set()
        self._queue: asyncio.Queue[Envelope] = asyncio.Queue()
        self._nonce = 0
        self._closed = False
        self.dispatched: list[Envelope] = []
        self.rejected: list[DeliveryResult] = []

    # ── Wiring ───────────────────────────────────────────────────────

    def add_domain(self, domain: int) -> None:
        self._domains.add(int(domain))

    def register(self, domain: int, address: str, recipient: Recipient) -> None:
        """Attach a recipient contract at ``address`` on ``domain``."""
        self.add_domain(domain)
        self._recipients[(int(domain), address_to_bytes32(address))] = recipient

    def endpoint(self, domain: int) -> "MailboxEndpoint":
        self.add_domain(domain)
        return MailboxEndpoint(self, int(domain))

    def close(self) -> None:
        self._closed = True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ── Dispatch ─────────────────────────────────────────────────────

    def _send(
        self,
        origin_domain: int,
        sender: str,
        destination_domain: int,
        recipient: str,
        payload: bytes,
    ) -> str:
        if self._closed:
            raise MailboxDispatchError("mailbox is closed")
        if destination_domain not in self._domains:
            raise MailboxDispatchError(f"no route to domain {destination_domain}")
        if not payload:
            raise MailboxDispatchError("empty payload")

        self._nonce += 1
        sender32 = address_to_bytes32(sender)
        recipient32 = address_to_bytes32(recipient)
        digest = hashlib.sha256(
            b"%d:%d:%d:" % (self._nonce, origin_domain, destination_domain)
            + sender32.encode() + recipient32.encode() + bytes(payload)
        )
        envelope = Envelope(
            message_id="0x" + digest.hexdigest(),
            origin_domain=origin_domain,
            sender=sender32,
            destination_domain=destination_domain,
            recipient=recipient32,
            payload=bytes(payload),
        )
        self.dispatched.append(envelope)
        self._queue.put_nowait(envelope)
        logger.info(
            "Dispatch %s: domain %d -> %d recipient %s (%d bytes)",
            envelope.message_id[:10], origin_domain, destination_domain,
            recipient32, len(envelope.payload),
        )
        return envelope.message_id

    def redeliver(self, message_id: str) -> None:
        """Queue an already dispatched message again (duplicate delivery)."""
        for envelope in self.dispatched:
            if envelope.message_id == message_id:
                self._queue.put_nowait(envelope)
                return
        raise KeyError(message_id)

    # ── Delivery ─────────────────────────────────────────────────────

    async def _deliver(self, envelope: Envelope) -> DeliveryResult:
        envelope.attempts += 1
        recipient = self._recipients.get((envelope.destination_domain, envelope.recipient))
        if recipient is None:
            # No contract at the address: the message is consumed, as on-chain.
            logger.warning(
                "No recipient %s on domain %d for %s",
                envelope.recipient, envelope.destination_domain, envelope.message_id[:10],
            )
            result = DeliveryResult(envelope.message_id, False, "no recipient")
            self.rejected.append(result)
            return result

        try:
            await recipient.handle_message(
                envelope.origin_domain, envelope.sender, envelope.payload, caller=self.relayer,
            )
        except ManteiaError as e:
            logger.error("Delivery of %s rejected: %s", envelope.message_id[:10], e)
            result = DeliveryResult(envelope.message_id, False, str(e))
            self.rejected.append(result)
            return result

        logger.debug("Delivered %s", envelope.message_id[:10])
        return DeliveryResult(envelope.message_id, True)

    async def process_next(self) -> Optional[DeliveryResult]:
        """Deliver one queued message, or return None if the queue is empty."""
        try:
            envelope = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        try:
            return await self._deliver(envelope)
        finally:
            self._queue.task_done()

    async def process_all(self) -> list[DeliveryResult]:
        results: list[DeliveryResult] = []
        while True:
            result = await self.process_next()
            if result is None:
                return results
            results.append(result)

    async def serve(self, stop_event: asyncio.Event, poll_seconds: float = 0.1) -> None:
        """Deliver messages as they arrive until ``stop_event`` is set."""
        while not stop_event.is_set():
            result = await self.process_next()
            if result is None:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=poll_seconds)
                except asyncio.TimeoutError:
                    pass


class MailboxEndpoint:
    """The mailbox as seen from one origin domain."""

    def __init__(self, network: InMemoryMailbox, domain: int):
        self.network = network
        self.domain = domain

    async def dispatch(
        self, destination_domain: int, recipient: str, payload: bytes, *, sender: str
    ) -> str:
        return self.network._send(self.domain, sender, int(destination_domain), recipient, payload)
