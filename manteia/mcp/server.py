"""
Read-only MCP server for operating the resolution bot.

Tools:
  - check_market    — fetch a market and show the decision the bot would make
  - tracker_status  — tracked markets, resolution state and recent attempts
  - find_markets    — search Gamma for markets and their condition ids

Nothing here settles a market; that only happens in the bot loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server

from ..bot.config import load_config
from ..bot.ratelimit import RateLimiter
from ..bot.run import check_market
from ..bot.tracker import MarketTracker
from ..polymarket.gamma import GammaClient
from ..polymarket.utils import safe_json

logger = logging.getLogger(__name__)


class ResolutionMCPServer:

    def __init__(self, config: dict, name: str = "manteia-resolution"):
        self.config = config
        self.server = Server(name)
        self._register_handlers()

    def _register_handlers(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return self._tools()

        @self.server.call_tool()
        async def call_tool(
            name: str, arguments: dict[str, Any]
        ) -> list[types.TextContent]:
            try:
                result = await self._dispatch(name, arguments)
                text = json.dumps(result, indent=2, default=str)
            except Exception as e:
                logger.error("Tool %s failed: %s", name, e)
                text = json.dumps({"error": str(e), "tool": name}, indent=2)
            return [types.TextContent(type="text", text=text)]

    @staticmethod
    def _tools() -> list[types.Tool]:
        return [
            types.Tool(
                name="check_market",
                description=(
                    "Fetch a Polymarket market by condition id and report whether it "
                    "is closed, which source answered, and the settlement outcome "
                    "(1 = YES, 0 = NO) the bot would submit. Does not settle."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "market_id": {
                            "type": "string",
                            "description": "Polymarket condition id, e.g. 0x5f65...",
                        },
                    },
                    "required": ["market_id"],
                },
            ),
            types.Tool(
                name="tracker_status",
                description=(
                    "List tracked markets with their resolved flag, outcome and "
                    "resolution time, plus the most recent resolution attempts."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "limit": {
                            "type": "integer",
                            "description": "How many recent attempts to include. Default 20.",
                            "default": 20,
                        },
                    },
                },
            ),
            types.Tool(
                name="find_markets",
                description=(
                    "Search Polymarket events by text and list their markets with "
                    "condition ids, ready to add to MARKETS_TO_TRACK."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Search query, e.g. 'bitcoin', 'election'.",
                        },
                        "closed": {
                            "type": "boolean",
                            "description": "Search closed events instead of open ones.",
                            "default": False,
                        },
                        "limit": {
                            "type": "integer",
                            "description": "Max events. Default 10.",
                            "default": 10,
                        },
                    },
                    "required": ["query"],
                },
            ),
        ]

    async def _dispatch(self, name: str, args: dict[str, Any]) -> Any:
        if name == "check_market":
            return await check_market(self.config, args["market_id"])

        if name == "tracker_status":
            db_path = self.config.get("database", {}).get("path", "data/resolutions.db")
            if not os.path.exists(db_path):
                return {"markets": [], "recent_attempts": []}
            tracker = MarketTracker(db_path)
            await tracker.load()
            return {
                "markets": [m.model_dump() for m in tracker.markets()],
                "recent_attempts": await tracker.recent_attempts(limit=args.get("limit", 20)),
            }

        if name == "find_markets":
            limiter = RateLimiter.from_config(self.config.get("rate_limit", {}))
            gamma = GammaClient(
                limiter,
                base_url=self.config.get("polymarket", {}).get("gamma_url", "https://gamma-api.polymarket.com"),
            )
            try:
                events = await gamma.search_events(
                    args["query"], limit=args.get("limit", 10), closed=args.get("closed", False),
                )
            finally:
                await gamma.aclose()
            return format_markets(events)

        return {"error": f"Unknown tool: {name}"}

    async def run(self) -> None:
        logger.info("Starting MCP server '%s' ...", self.server.name)
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )


def format_markets(events: list[dict]) -> list[dict]:
    """Flatten Gamma events into one row per market with its condition id."""
    results = []
    for e in events:
        for m in e.get("markets", []):
            results.append({
                "event": e.get("title"),
                "question": m.get("question"),
                "condition_id": m.get("conditionId"),
                "outcomes": safe_json(m.get("outcomes", "[]")),
                "closed": m.get("closed"),
                "end_date": m.get("endDate") or e.get("endDate"),
            })
    return results


# ── Entry point ──────────────────────────────────────────────────────

def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    server = ResolutionMCPServer(load_config())
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
