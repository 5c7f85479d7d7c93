"""Tests for the durable market tracker."""

import asyncio
from datetime import datetime, timezone

import pytest

from manteia.bot.tracker import MarketTracker
from manteia.errors import TrackerStorageError


@pytest.mark.asyncio
async def test_resolution_survives_restart(tmp_path):
    db_path = str(tmp_path / "data" / "resolutions.db")
    tracker = await MarketTracker(db_path).open()
    await tracker.track(["M1", "M2"])
    when = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    await tracker.record_resolved("M1", 1, when)

    reloaded = await MarketTracker(db_path).open()
    assert reloaded.is_resolved("M1")
    assert not reloaded.is_resolved("M2")
    record = reloaded.get("M1")
    assert record.resolved_outcome == 1
    assert record.resolved_at == when
    assert reloaded.pending() == ["M2"]


@pytest.mark.asyncio
async def test_first_resolution_wins(tmp_path):
    tracker = await MarketTracker(str(tmp_path / "r.db")).open()

    await tracker.record_resolved("M1", 0)
    again = await tracker.record_resolved("M1", 1)

    assert again.resolved_outcome == 0
    reloaded = await MarketTracker(str(tmp_path / "r.db")).open()
    assert reloaded.get("M1").resolved_outcome == 0


@pytest.mark.asyncio
async def test_track_is_idempotent(tmp_path):
    tracker = await MarketTracker(str(tmp_path / "r.db")).open()

    assert await tracker.track(["M1", "M1", "M2"]) == ["M1", "M2"]
    assert await tracker.track(["M2", "M3"]) == ["M3"]

    reloaded = await MarketTracker(str(tmp_path / "r.db")).open()
    assert sorted(m.market_id for m in reloaded.markets()) == ["M1", "M2", "M3"]


@pytest.mark.asyncio
async def test_unusable_storage_aborts_open(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")

    with pytest.raises(TrackerStorageError):
        await MarketTracker(str(blocker / "resolutions.db")).open()


@pytest.mark.asyncio
async def test_attempts_are_logged_newest_first(tmp_path):
    tracker = await MarketTracker(str(tmp_path / "r.db")).open()

    await tracker.log_attempt("M1", "UNAVAILABLE", cycle=1, detail="timeout")
    await tracker.log_attempt("M1", "RESOLVED", cycle=2, source="clob-market", outcome=1)
    await tracker.log_attempt("M2", "AMBIGUOUS", cycle=2)

    entries = await tracker.recent_attempts(market_id="M1")
    assert [e["action"] for e in entries] == ["RESOLVED", "UNAVAILABLE"]
    assert entries[0]["outcome"] == 1
    assert len(await tracker.recent_attempts(limit=2)) == 2


@pytest.mark.asyncio
async def test_concurrent_resolutions_keep_the_first(tmp_path):
    db_path = str(tmp_path / "r.db")
    tracker = await MarketTracker(db_path).open()
    await tracker.track(["M1"])

    records = await asyncio.gather(
        tracker.record_resolved("M1", 1),
        tracker.record_resolved("M1", 0),
        tracker.record_resolved("M1", 0),
    )

    assert [r.resolved_outcome for r in records] == [1, 1, 1]
    assert tracker.get("M1").resolved_outcome == 1
    reloaded = await MarketTracker(db_path).open()
    assert reloaded.get("M1") == tracker.get("M1")
