"""
Outcome normalization.

Turns a raw ``MarketReport`` into an ``OutcomeDecision``.  Known shapes:

  flat labels   {"closed": true, "winning_outcome": "YES"}   (also winner,
                outcome, resolution, result; numeric 0/1 for outcome)
  CLOB tokens   {"closed": true, "tokens": [{"outcome": "Yes", "winner": true}, ...]}
  Gamma         {"closed": true, "outcomes": "[\"Yes\", \"No\"]",
                 "outcomePrices": "[\"1\", \"0\"]"}

Binary only: YES -> 1, NO -> 0.  A closed market whose outcome can't be read
unambiguously raises ``AmbiguousOutcomeError``; nothing is ever guessed.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .models import MarketReport, OutcomeDecision
from .utils import safe_json
from ..errors import AmbiguousOutcomeError

logger = logging.getLogger(__name__)

LABEL_FIELDS = ("winning_outcome", "winner", "outcome", "resolution", "result")
CLOSED_STATUSES = {"closed", "resolved", "settled", "finalized"}

_LABELS = {"YES": 1, "NO": 0}


def is_closed(data: dict[str, Any]) -> bool:
    """True if any known flag says the market is closed / resolved."""
    if data.get("resolved") is True or data.get("closed") is True or data.get("is_resolved") is True:
        return True
    status = data.get("status") or data.get("umaResolutionStatus")
    return isinstance(status, str) and status.strip().lower() in CLOSED_STATUSES


def map_label(value: Any) -> Optional[int]:
    """Map a YES/NO label (or a numeric 0/1) to 1/0; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value in (0, 1) else None
    if isinstance(value, str):
        return _LABELS.get(value.strip().upper())
    return None


def _from_tokens(market_id: str, tokens: list) -> Optional[int]:
    winners = [
        t for t in tokens
        if isinstance(t, dict) and (t.get("winner") is True or t.get("winning") is True)
    ]
    if not winners:
        return None
    if len(winners) > 1:
        raise AmbiguousOutcomeError(market_id, f"{len(winners)} winning tokens")
    label = winners[0].get("outcome")
    outcome = map_label(label)
    if outcome is None:
        raise AmbiguousOutcomeError(market_id, f"non-binary winning token {label!r}")
    return outcome


def _from_gamma(market_id: str, data: dict[str, Any]) -> Optional[int]:
    labels = safe_json(data.get("outcomes"))
    prices = safe_json(data.get("outcomePrices"))
    if not labels or len(labels) != len(prices):
        return None
    try:
        settled = [float(p) for p in prices]
    except (TypeError, ValueError):
        raise AmbiguousOutcomeError(market_id, f"unreadable outcomePrices {prices!r}") from None
    winners = [labels[i] for i, p in enumerate(settled) if p == 1.0]
    if len(winners) != 1:
        return None
    outcome = map_label(winners[0])
    if outcome is None:
        raise AmbiguousOutcomeError(market_id, f"non-binary winning outcome {winners[0]!r}")
    return outcome


def decide_outcome(report: MarketReport) -> OutcomeDecision:
    """
    Read the settlement value out of a report.

    Returns a decision with ``closed=False`` while the market is still open.

    Raises:
        AmbiguousOutcomeError: the market is closed but its outcome is missing,
            unrecognized, non-binary or contradicted by another field.
    """
    data = report.data
    market_id = report.market_id
    if not is_closed(data):
        return OutcomeDecision(market_id=market_id, source=report.source, closed=False)

    found: list[tuple[str, int]] = []
    for name in LABEL_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        outcome = map_label(value)
        if outcome is None:
            raise AmbiguousOutcomeError(market_id, f"unrecognized {name}={value!r}")
        found.append((name, outcome))

    tokens = data.get("tokens")
    if isinstance(tokens, list) and tokens:
        outcome = _from_tokens(market_id, tokens)
        if outcome is not None:
            found.append(("tokens", outcome))

    if "outcomePrices" in data:
        outcome = _from_gamma(market_id, data)
        if outcome is not None:
            found.append(("outcomePrices", outcome))

    if not found:
        raise AmbiguousOutcomeError(market_id, "closed without a winning outcome")
    values = {outcome for _, outcome in found}
    if len(values) > 1:
        raise AmbiguousOutcomeError(market_id, f"conflicting outcome fields {found}")

    field, outcome = found[0]
    logger.debug("Market %s outcome %d from %s (%s)", market_id, outcome, field, report.source)
    return OutcomeDecision(
        market_id=market_id,
        source=report.source,
        closed=True,
        outcome=outcome,
        label="YES" if outcome == 1 else "NO",
    )
