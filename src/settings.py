"""Static configuration for newsrelay.

All user-editable settings (feed, schedule, retention, storage, logging) live
in a single JSON file for quick edits without touching Python. Secrets stay in
the environment (.env).
"""

import json
import os

from core.config import SELECTION_POLICIES

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# NEWSRELAY_CONFIG overrides the config location, e.g. for containers.
CONFIG_PATH = os.getenv("NEWSRELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))

# The broadcast timer may be set anywhere from 1 to 45 minutes.
MIN_BROADCAST_INTERVAL = 60
MAX_BROADCAST_INTERVAL = 45 * 60


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Feed source.
_feed = _CONFIG.get("feed", {})
FEED_URL = _feed.get("url", "https://news.mail.ru/rss/")
FEED_TIMEOUT_SECONDS = float(_feed.get("timeout_seconds", 15))

# Timers. Ingest and broadcast are decoupled and run independently.
_schedule = _CONFIG.get("schedule", {})
INGEST_INTERVAL_SECONDS = int(_schedule.get("ingest_interval_seconds", 60))
BROADCAST_INTERVAL_SECONDS = int(_schedule.get("broadcast_interval_seconds", MAX_BROADCAST_INTERVAL))
WELCOME_DELAY_SECONDS = float(_schedule.get("welcome_delay_seconds", 5))
PURGE_INTERVAL_SECONDS = int(_schedule.get("purge_interval_seconds", 3600))
if not MIN_BROADCAST_INTERVAL <= BROADCAST_INTERVAL_SECONDS <= MAX_BROADCAST_INTERVAL:
    raise ValueError(
        f"schedule.broadcast_interval_seconds must be between {MIN_BROADCAST_INTERVAL} and {MAX_BROADCAST_INTERVAL}"
    )

# Retention windows. The two TTLs are independent on purpose.
# - DEDUP_TTL_HOURS: how long an ingested item stays known
# - DELIVERY_TTL_HOURS: how long an item stays excluded for a recipient
_retention = _CONFIG.get("retention", {})
DEDUP_TTL_HOURS = int(_retention.get("dedup_ttl_hours", 48))
DELIVERY_TTL_HOURS = int(_retention.get("delivery_ttl_hours", 96))

# Selection policy: "per_recipient" or "shared".
_broadcast = _CONFIG.get("broadcast", {})
SELECTION_POLICY = _broadcast.get("selection_policy", "per_recipient")
if SELECTION_POLICY not in SELECTION_POLICIES:
    raise ValueError(f"broadcast.selection_policy must be one of {', '.join(SELECTION_POLICIES)}")

# Storage backend: "sqlite" (default) or "redis". Redis host and password come
# from REDIS_HOST / REDIS_PASSWORD in the environment.
_storage = _CONFIG.get("storage", {})
STORAGE_BACKEND = _storage.get("backend", "sqlite")
DB_PATH = _resolve_path(_storage.get("sqlite_path", "newsrelay.db"))
REDIS_DB = int(_storage.get("redis_db", 0))
REDIS_KEY_PREFIX = _storage.get("key_prefix", "newsrelay:")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
