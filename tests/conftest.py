from __future__ import annotations

import pytest

from manteia.bot.ratelimit import RateLimiter
from manteia.relay.hub import Hub
from manteia.relay.mailbox import InMemoryMailbox
from manteia.relay.spoke import Spoke

ORIGIN_DOMAIN = 11155111
HUB_DOMAIN = 5003

HUB_ADDRESS = "0x2b6cd3afed7e454ba715ae04376cbe4639419946"
SPOKE_ADDRESS = "0x1111111111111111111111111111111111111111"
ROGUE_ADDRESS = "0x9999999999999999999999999999999999999999"
RESOLVER = "0x000000000000000000000000000000000000000a"
ALICE = "0xa11ce00000000000000000000000000000000001"
BOB = "0xb0b0000000000000000000000000000000000002"


class FakeClock:
    """Monotonic clock that only moves when a limiter pauses."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def fast_limiter(clock: FakeClock | None = None, **kwargs) -> RateLimiter:
    """RateLimiter whose waits advance a fake clock instead of sleeping."""
    clock = clock or FakeClock()
    limiter = RateLimiter(clock=clock, **kwargs)

    async def pause(delay: float) -> None:
        clock.now += delay

    limiter._pause = pause
    return limiter


@pytest.fixture
def hub() -> Hub:
    hub = Hub(resolver=RESOLVER, domain=HUB_DOMAIN)
    hub.enroll_spoke(ORIGIN_DOMAIN, SPOKE_ADDRESS)
    return hub


@pytest.fixture
def mailbox(hub: Hub) -> InMemoryMailbox:
    mailbox = InMemoryMailbox()
    mailbox.register(HUB_DOMAIN, HUB_ADDRESS, hub)
    return mailbox


@pytest.fixture
def spoke(mailbox: InMemoryMailbox) -> Spoke:
    return Spoke(
        mailbox.endpoint(ORIGIN_DOMAIN),
        address=SPOKE_ADDRESS,
        domain=ORIGIN_DOMAIN,
        hub_domain=HUB_DOMAIN,
        hub_address=HUB_ADDRESS,
    )
