"""
Resolution bot entry point — wires config, oracle feed, tracker and
settlement target, then runs the poll loop.

In ``local`` settlement mode the bot resolves on an in-process Hub that is
shared with the relay: one Hub, its enrolled Spokes, and a mailbox delivery
loop running alongside the poll loop under the same shutdown.

Entry point for the script workflow:
    python -m manteia.bot.run [--config config.yaml] [--interval 60] [--once]
    python -m manteia.bot.run --check 0x5f65...   (fetch and decide, no settlement)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from typing import Any, Optional

from .config import load_config
from .ratelimit import RateLimiter
from .resolver import CycleReport, ResolutionBot
from .settlement import HttpSettlement, HubSettlement, Settlement
from .tracker import MarketTracker
from ..errors import AmbiguousOutcomeError, OracleUnavailableError, TrackerStorageError
from ..orders import OrderDesk
from ..polymarket.clob import ClobClient
from ..polymarket.feed import OracleFeed
from ..polymarket.gamma import GammaClient
from ..polymarket.outcome import decide_outcome
from ..relay.hub import Hub
from ..relay.mailbox import InMemoryMailbox
from ..relay.spoke import Spoke

logger = logging.getLogger(__name__)

LOCAL_RESOLVER = "0x" + "00" * 19 + "0a"
LOCAL_HUB_ADDRESS = "0x" + "00" * 19 + "0b"


def build_feed(config: dict, limiter: RateLimiter) -> OracleFeed:
    """Construct the oracle feed (CLOB primary, Gamma last resort)."""
    pm_cfg = config.get("polymarket", {})
    clob = ClobClient(limiter, base_url=pm_cfg.get("clob_url", "https://clob.polymarket.com"))
    gamma = None
    if pm_cfg.get("use_gamma_fallback", True):
        gamma = GammaClient(limiter, base_url=pm_cfg.get("gamma_url", "https://gamma-api.polymarket.com"))
    return OracleFeed(clob, gamma)


def build_relay(config: dict) -> tuple[OrderDesk, InMemoryMailbox]:
    """
    Construct the in-process relay: one Hub, its trusted Spokes and the mailbox
    connecting them.
    """
    relay_cfg = config.get("relay", {})
    resolver = config.get("settlement", {}).get("resolver_address", LOCAL_RESOLVER)
    hub_domain = int(relay_cfg.get("hub_domain", 0))
    hub_address = relay_cfg.get("hub_address", LOCAL_HUB_ADDRESS)

    hub = Hub(resolver=resolver, domain=hub_domain)
    mailbox = InMemoryMailbox()
    mailbox.register(hub_domain, hub_address, hub)

    spokes = {}
    for spoke_cfg in relay_cfg.get("spokes", []):
        domain = int(spoke_cfg["domain"])
        hub.enroll_spoke(domain, spoke_cfg["address"])
        spokes[domain] = Spoke(
            mailbox.endpoint(domain),
            address=spoke_cfg["address"],
            domain=domain,
            hub_domain=hub_domain,
            hub_address=hub_address,
        )
    return OrderDesk(hub, spokes), mailbox


def build_settlement(config: dict, hub: Optional[Hub] = None) -> Settlement:
    """Construct the settlement target selected by ``settlement.mode``."""
    cfg = config.get("settlement", {})
    mode = cfg.get("mode", "local")
    if mode == "http":
        return HttpSettlement(cfg["url"], cfg["api_token"], hub_address=cfg.get("hub_address"))
    if mode == "local":
        resolver = cfg.get("resolver_address", LOCAL_RESOLVER)
        if hub is None:
            hub = Hub(resolver=resolver)
        logger.warning("Settlement mode 'local': resolutions go to an in-process hub only")
        return HubSettlement(hub, resolver)
    raise ValueError(f"unknown settlement mode: {mode!r}")


def _build_bot(config: dict, settlement: Settlement) -> tuple[ResolutionBot, RateLimiter]:
    """Construct a ResolutionBot from config."""
    limiter = RateLimiter.from_config(config.get("rate_limit", {}))
    resolution = config.get("resolution", {})
    bot = ResolutionBot(
        feed=build_feed(config, limiter),
        settlement=settlement,
        tracker=MarketTracker(config.get("database", {}).get("path", "data/resolutions.db")),
        markets=resolution.get("markets_to_track", []),
        interval_seconds=resolution.get("poll_interval_ms", 60000) / 1000,
    )
    return bot, limiter


async def run_with_relay(
    bot: ResolutionBot,
    mailbox: InMemoryMailbox,
    stop_event: asyncio.Event,
    max_cycles: Optional[int] = None,
) -> list[CycleReport]:
    """Run the poll loop and mailbox delivery together until either stops."""

    async def poll() -> list[CycleReport]:
        try:
            return await bot.run(max_cycles=max_cycles)
        finally:
            stop_event.set()

    reports, _ = await asyncio.gather(poll(), mailbox.serve(stop_event))
    mailbox.close()
    return reports


async def check_market(config: dict, market_id: str) -> dict[str, Any]:
    """Fetch a market and report what the bot would do, without settling."""
    limiter = RateLimiter.from_config(config.get("rate_limit", {}))
    feed = build_feed(config, limiter)
    try:
        report = await feed.fetch(market_id)
        decision = decide_outcome(report)
        return {
            "market_id": market_id,
            "source": report.source,
            "closed": decision.closed,
            "outcome": decision.outcome,
            "label": decision.label,
        }
    except (OracleUnavailableError, AmbiguousOutcomeError) as e:
        return {"market_id": market_id, "error": str(e)}
    finally:
        await feed.aclose()


async def run(config_path: str = "config.yaml", interval: float | None = None, once: bool = False) -> None:
    """High-level entry: load config, build bot, run loop until signalled."""
    config = load_config(config_path)
    mode = config.get("settlement", {}).get("mode", "local")
    desk, mailbox = build_relay(config) if mode == "local" else (None, None)
    bot, limiter = _build_bot(config, build_settlement(config, hub=desk.hub if desk else None))
    if interval is not None:
        bot.interval_seconds = interval
    stop_event = asyncio.Event()

    def _shutdown() -> None:
        logger.info("Shutdown requested; finishing current market")
        bot.stop()
        limiter.close()
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown)
        except NotImplementedError:
            pass

    print("Starting Manteia Resolution Bot...")
    print(f"  Tracking {len(bot.markets)} markets")
    print(f"  Poll interval: {bot.interval_seconds:.0f}s")
    print(f"  Settlement: {mode}")
    if desk is not None:
        print(f"  Relay: hub domain {desk.hub.domain}, {len(desk.spokes)} spokes")
    print()

    max_cycles = 1 if once else None
    try:
        if mailbox is not None:
            await run_with_relay(bot, mailbox, stop_event, max_cycles=max_cycles)
        else:
            await bot.run(max_cycles=max_cycles)
    finally:
        await bot.feed.aclose()
        aclose = getattr(bot.settlement, "aclose", None)
        if aclose is not None:
            await aclose()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Manteia market resolution bot")
    parser.add_argument("--config", default="config.yaml", help="Config file path")
    parser.add_argument(
        "--interval", type=float, default=None, help="Poll interval in seconds (overrides config)"
    )
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")
    parser.add_argument(
        "--check", metavar="MARKET_ID", help="Fetch one market and print the decision, no settlement"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.check:
        config = load_config(args.config)
        print(json.dumps(asyncio.run(check_market(config, args.check)), indent=2))
        return

    try:
        asyncio.run(run(config_path=args.config, interval=args.interval, once=args.once))
    except TrackerStorageError as e:
        logger.critical("Tracker storage unusable, refusing to run: %s", e)
        raise SystemExit(2) from e


if __name__ == "__main__":
    main()
