"""
Error taxonomy shared by the relay and the resolution bot.

Decode and authorization failures are local rejects: the caller sees the
exception and no state has been touched.  Oracle and settlement failures are
retried on the next poll cycle.  Only tracker storage failures are fatal.
"""


class ManteiaError(Exception):
    """Base class for every error raised by this package."""


class InvalidRequestError(ManteiaError, ValueError):
    """An order or resolution request carried out-of-range values."""


class DecodeError(ManteiaError):
    """A relay payload could not be decoded into an order."""


class AuthorizationError(ManteiaError):
    """Sender, domain or resolver identity is not the trusted one."""


class AlreadyResolvedError(ManteiaError):
    """The market already has a canonical outcome."""

    def __init__(self, market_id: int, outcome: int | None = None):
        self.market_id = market_id
        self.outcome = outcome
        super().__init__(f"market {market_id} already resolved")


class MailboxDispatchError(ManteiaError):
    """The mailbox refused to accept a message for dispatch."""


class OracleUnavailableError(ManteiaError):
    """Every oracle endpoint failed for a market."""

    def __init__(self, market_id: str, errors: list[str] | None = None):
        self.market_id = market_id
        self.errors = errors or []
        detail = "; ".join(self.errors) if self.errors else "no data"
        super().__init__(f"oracle unavailable for {market_id}: {detail}")


class AmbiguousOutcomeError(ManteiaError):
    """The oracle says the market is closed but the outcome can't be read."""

    def __init__(self, market_id: str, reason: str):
        self.market_id = market_id
        self.reason = reason
        super().__init__(f"ambiguous outcome for {market_id}: {reason}")


class TrackerStorageError(ManteiaError):
    """The durable resolution record could not be read or written."""


class RateLimiterClosed(ManteiaError):
    """The rate limiter was closed while a caller was waiting for a slot."""
