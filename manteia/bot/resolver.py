"""
Resolution bot runner.

Defines the poll loop:
  load tracker -> for each pending market: fetch -> decide -> settle -> record -> sleep

Per-market state machine::

    PENDING -> RESOLVING -> RESOLVED      (terminal)
    PENDING -> FAILED                     (back to PENDING next cycle)

A market is recorded as resolved only after the settlement call returned
(or reported the market already resolved with the same outcome) and the
tracker write committed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .settlement import Settlement
from .tracker import MarketTracker
from ..errors import (
    AlreadyResolvedError,
    AmbiguousOutcomeError,
    OracleUnavailableError,
    RateLimiterClosed,
    TrackerStorageError,
)
from ..polymarket.feed import OracleFeed
from ..polymarket.outcome import decide_outcome
from ..polymarket.utils import numeric_market_id

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class MarketState(str, Enum):
    PENDING = "PENDING"
    RESOLVING = "RESOLVING"
    RESOLVED = "RESOLVED"
    FAILED = "FAILED"


@dataclass
class CycleReport:
    """What happened to each market in one poll cycle."""
    cycle: int
    started_at: datetime = field(default_factory=datetime.now)
    resolved: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    interrupted: bool = False


class ResolutionBot:
    """
    Polls tracked markets and settles each one exactly once.

    Args:
        feed: oracle source (rate limited internally).
        settlement: target of ``resolve_market`` calls.
        tracker: durable resolved-market record.
        markets: market ids from the tracking configuration.
        interval_seconds: time between cycle starts.
    """

    def __init__(
        self,
        feed: OracleFeed,
        settlement: Settlement,
        tracker: MarketTracker,
        markets: Iterable[str],
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self.feed = feed
        self.settlement = settlement
        self.tracker = tracker
        self.markets = list(dict.fromkeys(markets))
        self.interval_seconds = interval_seconds
        self.states: dict[str, MarketState] = {}
        self.settlement_ids: dict[str, int] = {}
        self.excluded: dict[str, str] = {}
        self.cycle = 0
        self._stop = asyncio.Event()

    # ── Lifecycle ────────────────────────────────────────────────────

    def _assign_settlement_ids(self) -> None:
        """
        Map each market to its settlement id, dropping markets that can't own one.

        Distinct condition ids can reduce to the same numeric id.  Every
        market in such a group is excluded: a settlement for one of them
        would be reported as "already resolved" for the others.
        """
        by_id: dict[int, list[str]] = {}
        for market_id in self.markets:
            try:
                by_id.setdefault(numeric_market_id(market_id), []).append(market_id)
            except ValueError as e:
                logger.error("Not tracking %s: %s", market_id, e)
                self.excluded[market_id] = str(e)

        for numeric_id, group in by_id.items():
            if len(group) == 1:
                self.settlement_ids[group[0]] = numeric_id
                continue
            logger.error(
                "Markets %s share settlement id %d; none of them will be resolved",
                ", ".join(group), numeric_id,
            )
            for market_id in group:
                self.excluded[market_id] = f"settlement id {numeric_id} shared with other markets"

        self.markets = [m for m in self.markets if m in self.settlement_ids]

    async def start(self) -> None:
        """
        Reload the tracker and register configured markets.

        Raises:
            TrackerStorageError: the durable record is unusable; do not run.
        """
        self._assign_settlement_ids()
        await self.tracker.open()
        await self.tracker.track(self.markets)
        for market_id in self.markets:
            resolved = self.tracker.is_resolved(market_id)
            self.states[market_id] = MarketState.RESOLVED if resolved else MarketState.PENDING

    def stop(self) -> None:
        """Ask the loop to exit at the next safe point (never mid-settlement)."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # ── Main loop ────────────────────────────────────────────────────

    async def run(self, max_cycles: Optional[int] = None) -> list[CycleReport]:
        """Run cycles every ``interval_seconds`` until stopped."""
        await self.start()
        logger.info(
            "Resolution bot started: %d markets, interval %.0fs",
            len(self.markets), self.interval_seconds,
        )

        reports: list[CycleReport] = []
        loop = asyncio.get_running_loop()
        while not self._stop.is_set():
            cycle_start = loop.time()
            reports.append(await self.poll_once())

            if max_cycles is not None and len(reports) >= max_cycles:
                break

            elapsed = loop.time() - cycle_start
            sleep_secs = max(0.0, self.interval_seconds - elapsed)
            if sleep_secs == 0:
                logger.warning("Cycle took longer than interval (%.1fs)", elapsed)
                continue
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=sleep_secs)
            except asyncio.TimeoutError:
                pass

        logger.info("Resolution bot stopped after %d cycles", self.cycle)
        return reports

    async def poll_once(self) -> CycleReport:
        """Run one cycle over every tracked market."""
        self.cycle += 1
        report = CycleReport(cycle=self.cycle)
        logger.info("Poll cycle #%d over %d markets", self.cycle, len(self.markets))

        for market_id in self.markets:
            if self._stop.is_set():
                report.interrupted = True
                break
            if self.tracker.is_resolved(market_id):
                self.states[market_id] = MarketState.RESOLVED
                report.skipped.append(market_id)
                continue

            try:
                state = await self._process_market(market_id)
            except RateLimiterClosed:
                report.interrupted = True
                break

            if state is MarketState.RESOLVED:
                report.resolved.append(market_id)
            elif state is MarketState.FAILED:
                report.failed.append(market_id)
            else:
                report.pending.append(market_id)

        logger.info(
            "Cycle #%d done: %d resolved, %d skipped, %d pending, %d failed",
            report.cycle, len(report.resolved), len(report.skipped),
            len(report.pending), len(report.failed),
        )
        return report

    # ── Per-market processing ────────────────────────────────────────

    async def _process_market(self, market_id: str) -> MarketState:
        self.states[market_id] = MarketState.PENDING
        try:
            report = await self.feed.fetch(market_id)
            decision = decide_outcome(report)
        except OracleUnavailableError as e:
            logger.warning("Oracle unavailable for %s, retrying next cycle: %s", market_id, e)
            await self._log(market_id, "UNAVAILABLE", detail=str(e))
            return self._set(market_id, MarketState.FAILED)
        except AmbiguousOutcomeError as e:
            logger.warning("Not resolvable yet: %s", e)
            await self._log(market_id, "AMBIGUOUS", detail=e.reason)
            return self._set(market_id, MarketState.PENDING)
        except (RateLimiterClosed, TrackerStorageError):
            raise
        except Exception as e:
            logger.error("Error checking %s: %s", market_id, e)
            await self._log(market_id, "ERROR", detail=str(e))
            return self._set(market_id, MarketState.FAILED)

        if not decision.resolvable:
            logger.info("Market %s is not yet resolved (%s)", market_id, report.source)
            return self._set(market_id, MarketState.PENDING)

        return await self._settle(market_id, decision.outcome, decision.source)

    async def _settle(self, market_id: str, outcome: int, source: str) -> MarketState:
        self._set(market_id, MarketState.RESOLVING)
        action = "RESOLVED"
        numeric_id = self.settlement_ids[market_id]
        try:
            logger.info(
                "Resolving market %s (id %d) with outcome %s",
                market_id, numeric_id, "YES" if outcome == 1 else "NO",
            )
            receipt = await self.settlement.resolve_market(numeric_id, outcome)
            resolved_at = receipt.confirmed_at
            logger.info("Market %s settled (ref %s)", market_id, receipt.reference)
        except AlreadyResolvedError as e:
            if e.outcome is not None and e.outcome != outcome:
                logger.error(
                    "Market %s (id %d) already settled as %d but the oracle says %d; not recording",
                    market_id, numeric_id, e.outcome, outcome,
                )
                await self._log(
                    market_id, "OUTCOME_CONFLICT", source=source, outcome=outcome,
                    detail=f"settled outcome is {e.outcome}",
                )
                return self._set(market_id, MarketState.FAILED)
            logger.info("Market %s (id %d) already resolved on-chain", market_id, numeric_id)
            action = "ALREADY_RESOLVED"
            resolved_at = None
        except Exception as e:
            logger.error("Error resolving market %s: %s", market_id, e)
            await self._log(market_id, "SETTLEMENT_FAILED", source=source, outcome=outcome, detail=str(e))
            return self._set(market_id, MarketState.FAILED)

        # Must commit before the next cycle; TrackerStorageError propagates.
        await self.tracker.record_resolved(market_id, outcome, resolved_at)
        await self._log(market_id, action, source=source, outcome=outcome)
        return self._set(market_id, MarketState.RESOLVED)

    def _set(self, market_id: str, state: MarketState) -> MarketState:
        self.states[market_id] = state
        return state

    async def _log(self, market_id: str, action: str, **kwargs) -> None:
        await self.tracker.log_attempt(market_id, action, cycle=self.cycle, **kwargs)
