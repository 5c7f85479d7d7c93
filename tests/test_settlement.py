"""Tests for the HTTP settlement target."""

import json

import httpx
import pytest

from manteia.bot.settlement import HttpSettlement
from manteia.errors import AlreadyResolvedError, AuthorizationError


def _settlement(handler) -> HttpSettlement:
    return HttpSettlement(
        "https://resolver.test/api/",
        "secret",
        hub_address="0x2b6cd3afed7e454ba715ae04376cbe4639419946",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_posts_outcome_with_credentials():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"txHash": "0xdead"})

    receipt = await _settlement(handler).resolve_market(251799, 1)

    assert seen == {"path": "/api/markets/251799/resolve", "auth": "Bearer secret", "body": {"outcome": 1}}
    assert receipt.reference == "0xdead"
    assert receipt.outcome == 1


@pytest.mark.asyncio
async def test_conflict_means_already_resolved():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": "market already resolved"})

    with pytest.raises(AlreadyResolvedError):
        await _settlement(handler).resolve_market(5, 0)


@pytest.mark.asyncio
async def test_forbidden_is_authorization_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403)

    with pytest.raises(AuthorizationError):
        await _settlement(handler).resolve_market(5, 0)


@pytest.mark.asyncio
async def test_server_error_propagates():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    with pytest.raises(httpx.HTTPStatusError):
        await _settlement(handler).resolve_market(5, 0)


@pytest.mark.asyncio
async def test_conflict_carries_settled_outcome():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": "market already resolved", "outcome": 0})

    with pytest.raises(AlreadyResolvedError) as exc:
        await _settlement(handler).resolve_market(5, 1)

    assert exc.value.outcome == 0


@pytest.mark.asyncio
async def test_non_json_success_body_still_settles():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="OK")

    receipt = await _settlement(handler).resolve_market(5, 1)

    assert receipt.reference is None
    assert receipt.outcome == 1
