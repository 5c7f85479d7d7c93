"""Tests for the Hub order book and resolution authority."""

import asyncio

import pytest

from manteia.errors import (
    AlreadyResolvedError,
    AuthorizationError,
    DecodeError,
    InvalidRequestError,
)
from manteia.relay.codec import address_to_bytes32, encode_order
from manteia.relay.hub import ACTIVE, CANCELLED

from conftest import ALICE, BOB, ORIGIN_DOMAIN, RESOLVER, ROGUE_ADDRESS, SPOKE_ADDRESS


@pytest.mark.asyncio
async def test_place_order_locally(hub):
    await hub.place_order(1, 60, 100, True, caller=ALICE)

    order = hub.get_order(1, ALICE)
    assert order.user == ALICE
    assert (order.price, order.amount, order.is_buy) == (60, 100, True)
    assert order.status == ACTIVE
    assert order.source == "local"


@pytest.mark.asyncio
async def test_later_order_overwrites_same_key(hub):
    await hub.place_order(1, 60, 100, True, caller=ALICE)
    await hub.place_order(1, 55, 10, False, caller=ALICE)
    await hub.place_order(1, 70, 5, True, caller=BOB)

    assert len(hub.snapshot()) == 2
    order = hub.get_order(1, ALICE)
    assert (order.price, order.amount, order.is_buy) == (55, 10, False)


@pytest.mark.asyncio
async def test_place_order_rejects_zero_amount_and_negatives(hub):
    with pytest.raises(InvalidRequestError):
        await hub.place_order(1, 60, 0, True, caller=ALICE)
    with pytest.raises(InvalidRequestError):
        await hub.place_order(1, -1, 10, True, caller=ALICE)
    assert hub.snapshot() == {}


@pytest.mark.asyncio
async def test_handle_message_from_trusted_spoke(hub):
    payload = encode_order(2, 62, 50, False)

    await hub.handle_message(ORIGIN_DOMAIN, address_to_bytes32(SPOKE_ADDRESS), payload, caller=BOB)

    order = hub.get_order(2, BOB)
    assert order.user == BOB
    assert (order.price, order.amount, order.is_buy) == (62, 50, False)
    assert order.source == "relay"


@pytest.mark.asyncio
async def test_duplicate_delivery_is_idempotent(hub):
    payload = encode_order(2, 62, 50, False)

    await hub.handle_message(ORIGIN_DOMAIN, SPOKE_ADDRESS, payload, caller=BOB)
    once = hub.snapshot()
    await hub.handle_message(ORIGIN_DOMAIN, SPOKE_ADDRESS, payload, caller=BOB)

    assert hub.snapshot() == once


@pytest.mark.asyncio
async def test_untrusted_sender_never_mutates(hub):
    await hub.place_order(1, 60, 100, True, caller=ALICE)
    before = hub.snapshot()
    payload = encode_order(1, 1, 1, False)

    with pytest.raises(AuthorizationError):
        await hub.handle_message(ORIGIN_DOMAIN, ROGUE_ADDRESS, payload, caller=ALICE)
    with pytest.raises(AuthorizationError):
        await hub.handle_message(42, SPOKE_ADDRESS, payload, caller=ALICE)
    with pytest.raises(AuthorizationError):
        await hub.handle_message(ORIGIN_DOMAIN, "not-an-address", payload, caller=ALICE)

    assert hub.snapshot() == before


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected_atomically(hub):
    await hub.place_order(1, 60, 100, True, caller=ALICE)
    before = hub.snapshot()

    with pytest.raises(DecodeError):
        await hub.handle_message(ORIGIN_DOMAIN, SPOKE_ADDRESS, b"\x01" * 100, caller=ALICE)

    assert hub.snapshot() == before


@pytest.mark.asyncio
async def test_cancel_leaves_tombstone(hub):
    await hub.place_order(1, 60, 100, True, caller=ALICE)
    await hub.place_order(1, 40, 10, False, caller=BOB)

    cancelled = await hub.cancel_order(1, caller=ALICE)

    assert cancelled.status == CANCELLED
    assert hub.get_order(1, ALICE).status == CANCELLED
    assert [o.user for o in hub.get_active_orders(market_id=1)] == [BOB]

    with pytest.raises(InvalidRequestError):
        await hub.cancel_order(99, caller=ALICE)


@pytest.mark.asyncio
async def test_resolve_market_once(hub):
    assert await hub.resolve_market(7, 1, caller=RESOLVER) == 1
    assert hub.market_resolved(7)

    with pytest.raises(AlreadyResolvedError) as exc:
        await hub.resolve_market(7, 0, caller=RESOLVER)

    assert exc.value.outcome == 1
    assert hub.market_outcome(7) == 1


@pytest.mark.asyncio
async def test_resolve_market_requires_resolver_and_binary_outcome(hub):
    with pytest.raises(AuthorizationError):
        await hub.resolve_market(7, 1, caller=ALICE)
    with pytest.raises(InvalidRequestError):
        await hub.resolve_market(7, 2, caller=RESOLVER)

    assert not hub.market_resolved(7)


@pytest.mark.asyncio
async def test_concurrent_writes_to_one_key_leave_one_whole_order(hub):
    sender = address_to_bytes32(SPOKE_ADDRESS)
    writes = [
        hub.place_order(3, 10 + i, 100 + i, i % 2 == 0, caller=BOB) for i in range(5)
    ] + [
        hub.handle_message(ORIGIN_DOMAIN, sender, encode_order(3, 50 + i, 500 + i, True), caller=BOB)
        for i in range(5)
    ]

    written = await asyncio.gather(*writes)

    assert len(hub.snapshot()) == 1
    final = hub.get_order(3, BOB)
    assert final in written
    assert final == written[-1]
