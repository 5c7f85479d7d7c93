"""
Configuration loader for the resolution bot.

Reads a YAML config and injects overrides and secrets from environment
variables.
"""

import copy
import os

import yaml
from dotenv import load_dotenv

load_dotenv()

DEFAULTS: dict = {
    "polymarket": {
        "clob_url": "https://clob.polymarket.com",
        "gamma_url": "https://gamma-api.polymarket.com",
        "use_gamma_fallback": True,
    },
    "rate_limit": {
        "max_requests_per_minute": 60,
        "request_delay_ms": 1100,
    },
    "resolution": {
        "poll_interval_ms": 60000,
        "markets_to_track": [],
    },
    "database": {"path": "data/resolutions.db"},
    "settlement": {"mode": "local"},
    "relay": {"hub_domain": 0, "spokes": []},
}


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = "config.yaml") -> dict:
    """
    Load configuration from YAML file, layered over the defaults.

    Environment overrides: MARKETS_TO_TRACK (comma separated),
    POLL_INTERVAL_MS, MARKET_HUB_ADDRESS.  RESOLVER_API_TOKEN is injected
    into settlement.api_token and is required for ``mode: http``.
    """
    config = copy.deepcopy(DEFAULTS)
    if config_path and os.path.exists(config_path):
        with open(config_path, "r") as f:
            config = _merge(config, yaml.safe_load(f) or {})

    resolution = config["resolution"]
    markets = os.getenv("MARKETS_TO_TRACK")
    if markets:
        resolution["markets_to_track"] = [m.strip() for m in markets.split(",") if m.strip()]
    interval = os.getenv("POLL_INTERVAL_MS")
    if interval:
        resolution["poll_interval_ms"] = int(interval)

    settlement = config["settlement"]
    hub_address = os.getenv("MARKET_HUB_ADDRESS")
    if hub_address:
        settlement["hub_address"] = hub_address

    # Inject API token from environment
    if settlement.get("mode") == "http":
        api_token = os.getenv("RESOLVER_API_TOKEN")
        if not api_token:
            raise ValueError("RESOLVER_API_TOKEN not found in environment")
        settlement["api_token"] = api_token
        if not settlement.get("url"):
            raise ValueError("settlement.url is required for http mode")

    return config
