"""Shared utilities."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def safe_json(val: Any) -> list:
    """Parse a JSON-encoded string, or return as-is if already a list."""
    if isinstance(val, list):
        return val
    if isinstance(val, str):
        try:
            parsed = json.loads(val)
        except (json.JSONDecodeError, TypeError):
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def numeric_market_id(market_id: str) -> int:
    """
    Map a tracked market id to the integer id used for settlement.

    Decimal ids pass through.  Hex condition ids use the first eight
    characters (``0x`` prefix included) as a base-16 number, mod 1,000,000.
    """
    text = str(market_id).strip()
    if text.isdigit():
        return int(text)
    try:
        return int(text[:8], 16) % 1_000_000
    except ValueError:
        raise ValueError(f"market id is neither decimal nor hex: {market_id!r}") from None
