"""SQLite-backed record of tracked and resolved markets."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

import aiosqlite

from ..errors import TrackerStorageError
from ..polymarket.models import TrackedMarket

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/resolutions.db"

CREATE_TABLES_SQL = """
-- One row per tracked market; resolved flips to 1 exactly once
CREATE TABLE IF NOT EXISTS tracked_markets (
    market_id TEXT PRIMARY KEY,
    resolved INTEGER NOT NULL DEFAULT 0,
    resolved_outcome INTEGER,
    resolved_at INTEGER,
    added_at INTEGER NOT NULL
);

-- Every resolution attempt, successful or not
CREATE TABLE IF NOT EXISTS resolution_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp INTEGER NOT NULL,
    cycle INTEGER,
    market_id TEXT NOT NULL,
    action TEXT NOT NULL,
    source TEXT,
    outcome INTEGER,
    detail TEXT
);

CREATE INDEX IF NOT EXISTS idx_tracked_resolved ON tracked_markets(resolved);
CREATE INDEX IF NOT EXISTS idx_log_market ON resolution_log(market_id);
"""


def _to_datetime(ts: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(ts, tz=timezone.utc) if ts is not None else None


class MarketTracker:
    """
    Durable ``market_id -> resolved`` record with an in-memory mirror.

    The mirror is only updated after the matching write has committed, so
    ``is_resolved`` never reports something the database would not.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        self._markets: dict[str, TrackedMarket] = {}
        self._lock = asyncio.Lock()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init_schema(self) -> None:
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.db_path) as db:
                await db.executescript(CREATE_TABLES_SQL)
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise TrackerStorageError(f"cannot initialise tracker at {self.db_path}: {e}") from e

    async def open(self) -> "MarketTracker":
        """Create the schema if needed and reload every row."""
        await self.init_schema()
        await self.load()
        return self

    async def load(self) -> None:
        """Replace the in-memory mirror with the full persisted set."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    "SELECT market_id, resolved, resolved_outcome, resolved_at "
                    "FROM tracked_markets ORDER BY rowid"
                ) as cursor:
                    rows = await cursor.fetchall()
        except (aiosqlite.Error, OSError) as e:
            raise TrackerStorageError(f"cannot read tracker at {self.db_path}: {e}") from e

        self._markets = {
            market_id: TrackedMarket(
                market_id=market_id,
                resolved=bool(resolved),
                resolved_outcome=outcome,
                resolved_at=_to_datetime(resolved_at),
            )
            for market_id, resolved, outcome, resolved_at in rows
        }
        resolved_count = sum(1 for m in self._markets.values() if m.resolved)
        logger.info(
            "Tracker loaded %d markets (%d resolved) from %s",
            len(self._markets), resolved_count, self.db_path,
        )

    async def reset(self) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DROP TABLE IF EXISTS tracked_markets")
            await db.execute("DROP TABLE IF EXISTS resolution_log")
            await db.commit()
        self._markets = {}
        await self.init_schema()

    # ── Reads ────────────────────────────────────────────────────────

    def is_resolved(self, market_id: str) -> bool:
        market = self._markets.get(market_id)
        return market is not None and market.resolved

    def get(self, market_id: str) -> Optional[TrackedMarket]:
        return self._markets.get(market_id)

    def markets(self) -> list[TrackedMarket]:
        return list(self._markets.values())

    def pending(self) -> list[str]:
        return [m.market_id for m in self._markets.values() if not m.resolved]

    # ── Writes ───────────────────────────────────────────────────────

    async def track(self, market_ids: Iterable[str]) -> list[str]:
        """Start tracking new markets; already tracked ids are left alone."""
        new_ids = [m for m in dict.fromkeys(market_ids) if m not in self._markets]
        if not new_ids:
            return []
        now = int(time.time())
        async with self._lock:
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.executemany(
                        "INSERT OR IGNORE INTO tracked_markets (market_id, added_at) VALUES (?, ?)",
                        [(m, now) for m in new_ids],
                    )
                    await db.commit()
            except (aiosqlite.Error, OSError) as e:
                raise TrackerStorageError(f"cannot track markets: {e}") from e
            for market_id in new_ids:
                self._markets.setdefault(market_id, TrackedMarket(market_id=market_id))
        logger.info("Tracking %d new markets", len(new_ids))
        return new_ids

    async def record_resolved(
        self,
        market_id: str,
        outcome: int,
        resolved_at: Optional[datetime] = None,
    ) -> TrackedMarket:
        """
        Mark ``market_id`` resolved and commit before returning.

        A market that is already resolved keeps its first record.

        Raises:
            TrackerStorageError: the write did not commit.
        """
        async with self._lock:
            existing = self._markets.get(market_id)
            if existing is not None and existing.resolved:
                return existing

            when = resolved_at or datetime.now(timezone.utc)
            ts = int(when.timestamp())
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        """
                        INSERT INTO tracked_markets
                            (market_id, resolved, resolved_outcome, resolved_at, added_at)
                        VALUES (?, 1, ?, ?, ?)
                        ON CONFLICT(market_id) DO UPDATE SET
                            resolved = 1,
                            resolved_outcome = excluded.resolved_outcome,
                            resolved_at = excluded.resolved_at
                        WHERE tracked_markets.resolved = 0
                        """,
                        (market_id, outcome, ts, ts),
                    )
                    await db.commit()
            except (aiosqlite.Error, OSError) as e:
                raise TrackerStorageError(f"cannot persist resolution of {market_id}: {e}") from e

            record = TrackedMarket(
                market_id=market_id,
                resolved=True,
                resolved_outcome=outcome,
                resolved_at=_to_datetime(ts),
            )
            self._markets[market_id] = record

        logger.info("Tracker recorded %s resolved (outcome %d)", market_id, outcome)
        return record

    # ── Audit log ────────────────────────────────────────────────────

    async def log_attempt(
        self,
        market_id: str,
        action: str,
        *,
        cycle: Optional[int] = None,
        source: Optional[str] = None,
        outcome: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        """Append to the audit log.  Failures here are logged, not raised."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "INSERT INTO resolution_log "
                    "(timestamp, cycle, market_id, action, source, outcome, detail) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (int(time.time()), cycle, market_id, action, source, outcome, detail),
                )
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            logger.warning("Could not write audit entry for %s: %s", market_id, e)

    async def recent_attempts(self, limit: int = 20, market_id: Optional[str] = None) -> list[dict]:
        query = "SELECT timestamp, cycle, market_id, action, source, outcome, detail FROM resolution_log"
        params: tuple = ()
        if market_id:
            query += " WHERE market_id = ?"
            params = (market_id,)
        query += " ORDER BY id DESC LIMIT ?"
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params + (limit,)) as cursor:
                rows = await cursor.fetchall()
        return [dict(row) for row in rows]
