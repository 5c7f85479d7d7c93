"""
Pydantic models for oracle and tracker data.

Shared type definitions used by the feed, the resolution bot and the MCP
server.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class MarketReport(BaseModel):
    """Raw market payload from one oracle source, tagged with where it came from."""
    market_id: str
    source: Literal["clob-market", "simplified", "sampling", "gamma"]
    data: dict[str, Any] = Field(default_factory=dict)


class OutcomeDecision(BaseModel):
    """Result of reading a report: settle with ``outcome`` or wait."""
    market_id: str
    source: str
    closed: bool
    outcome: Optional[Literal[0, 1]] = None
    label: Optional[str] = None

    @property
    def resolvable(self) -> bool:
        return self.closed and self.outcome is not None


class TrackedMarket(BaseModel):
    """A market the bot polls until it is resolved, then never revisits."""
    market_id: str
    resolved: bool = False
    resolved_outcome: Optional[Literal[0, 1]] = None
    resolved_at: Optional[datetime] = None
