"""Runtime configuration for SigMine.

Values come from environment variables first, then from an optional JSON file
(``SIGMINE_CONFIG``, default ``config.json`` next to this module) that carries
the RSS feed list and a few overrides.
"""

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger("sigmine.config")

BASE_DIR = Path(__file__).parent
CONFIG_PATH = Path(os.environ.get("SIGMINE_CONFIG", str(BASE_DIR / "config.json")))

DEFAULT_FEEDS = [
    {"name": "CoinDesk", "url": "https://www.coindesk.com/arc/outboundfeeds/rss/", "category": "crypto"},
    {"name": "TechCrunch", "url": "https://techcrunch.com/feed/", "category": "tech"},
    {"name": "BBC World", "url": "https://feeds.bbci.co.uk/news/world/rss.xml", "category": "world"},
]


def _load_file_config(path):
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


_FILE_CONFIG = _load_file_config(CONFIG_PATH)


def _setting(env_name, file_key, default):
    raw = os.environ.get(env_name)
    if raw is not None and raw != "":
        return raw
    return _FILE_CONFIG.get(file_key, default)


DB_PATH = str(_setting("DB_PATH", "db_path", str(BASE_DIR / "sigmine.db")))
PORT = int(_setting("PORT", "port", 3456))

EPOCH_DURATION_SECONDS = int(_setting("EPOCH_DURATION_SECONDS", "epoch_duration_seconds", 3600))
HEARTBEAT_TIMEOUT_SECONDS = int(_setting("HEARTBEAT_TIMEOUT_SECONDS", "heartbeat_timeout_seconds", 120))
MARKET_CACHE_TTL_SECONDS = int(_setting("MARKET_CACHE_TTL_SECONDS", "market_cache_ttl_seconds", 600))
FEED_CACHE_TTL_SECONDS = int(_setting("FEED_CACHE_TTL_SECONDS", "feed_cache_ttl_seconds", 300))
CLAIM_TTL_SECONDS = int(_setting("CLAIM_TTL_SECONDS", "claim_ttl_seconds", 1800))
UPSTREAM_TIMEOUT_SECONDS = float(_setting("UPSTREAM_TIMEOUT_SECONDS", "upstream_timeout_seconds", 10))

POLYMARKET_MARKETS_URL = str(_setting(
    "POLYMARKET_MARKETS_URL",
    "polymarket_markets_url",
    "https://gamma-api.polymarket.com/markets?closed=false&limit=100&active=true",
))
PUBLIC_JOIN_URL = str(_setting("PUBLIC_JOIN_URL", "public_join_url", "http://localhost:3456/join.html"))

FEEDS = _FILE_CONFIG.get("feeds") or DEFAULT_FEEDS

LOG_LEVEL = str(_setting("LOG_LEVEL", "log_level", "INFO")).upper()
LOG_FILE = _setting("LOG_FILE", "log_file", "")
