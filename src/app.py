"""Application entry point for the newsrelay bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.redis_storage import RedisStorage, build_redis_client
from adapters.rss_feed import RssFeed
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_commands import CommandRouter
from adapters.telegram_sender import TelegramSender
from client import build_client, load_credentials
from core.config import BroadcastConfig, RetentionConfig, RetryConfig
from core.engine import BroadcastEngine
from core.errors import NewsRelayError
from core.ingestion import ingest_items
from core.scheduler import PeriodicTask, Scheduler

NAME = "NEWSRELAY"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", ["TELEGRAM_BOT_TOKEN", "API_HASH", "REDIS_PASSWORD"]):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/newsrelay.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO; keep our own records readable.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _build_storage():
    """Select the storage backend from configuration."""

    retention = RetentionConfig(
        dedup_ttl_hours=settings.DEDUP_TTL_HOURS,
        delivery_ttl_hours=settings.DELIVERY_TTL_HOURS,
    )
    retry = RetryConfig()

    if settings.STORAGE_BACKEND == "sqlite":
        storage = SQLiteStorage(settings.DB_PATH, retention, retry)
        storage.init_db()
        return storage
    if settings.STORAGE_BACKEND == "redis":
        load_dotenv()
        client = build_redis_client(
            os.getenv("REDIS_HOST", "localhost:6379"),
            os.getenv("REDIS_PASSWORD"),
            settings.REDIS_DB,
            retry,
        )
        storage = RedisStorage(client, retention, key_prefix=settings.REDIS_KEY_PREFIX)
        storage.ping()
        return storage
    raise RuntimeError("storage.backend must be 'sqlite' or 'redis'")


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting newsrelay")

    storage = _build_storage()

    credentials = load_credentials()
    client = build_client(credentials)
    sender = TelegramSender(client)
    engine = BroadcastEngine(
        feed=RssFeed(settings.FEED_URL, settings.FEED_TIMEOUT_SECONDS),
        dedup_store=storage,
        registry=storage,
        tracker=storage,
        sender=sender,
        config=BroadcastConfig(
            selection_policy=settings.SELECTION_POLICY,
            welcome_delay_seconds=settings.WELCOME_DELAY_SECONDS,
        ),
    )
    router = CommandRouter(engine, sender)
    logger.info("Selection policy - %s", settings.SELECTION_POLICY)

    # Commands are the only updates we act on; plain chat text is ignored.
    @client.on(events.NewMessage(incoming=True, pattern=r"^/"))
    async def handler(event) -> None:
        try:
            await router.handle(str(event.chat_id), event.raw_text)
        except Exception:
            logger.exception("Error while handling command")

    scheduler = Scheduler(
        [
            PeriodicTask("ingest", settings.INGEST_INTERVAL_SECONDS, engine.ingest),
            PeriodicTask("broadcast", settings.BROADCAST_INTERVAL_SECONDS, engine.run_broadcast_cycle),
            # Expired rows are invisible to reads but still take space.
            PeriodicTask("purge", settings.PURGE_INTERVAL_SECONDS, engine.purge_expired),
        ]
    )

    async def _serve() -> None:
        await client.start(bot_token=credentials.bot_token)
        logger.info("Bot connected. Listening for commands...")
        scheduler.start()
        try:
            await client.run_until_disconnected()
        finally:
            await scheduler.stop()

    try:
        client.loop.run_until_complete(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


def _ingest() -> None:
    _configure_logging()
    logger = logging.getLogger(__name__)

    storage = _build_storage()
    feed = RssFeed(settings.FEED_URL, settings.FEED_TIMEOUT_SECONDS)
    try:
        items = asyncio.run(feed.fetch())
        result = ingest_items(items, storage)
        logger.info("Ingest complete: fetched=%s, added=%s, stored=%s", result.fetched, result.added, storage.size())
    except NewsRelayError as exc:
        logger.error("Ingest failed: %s", exc)
        raise SystemExit(1) from exc


def _stats() -> None:
    _configure_logging()
    storage = _build_storage()
    logging.getLogger(__name__).info(
        "Stored news: %s, recipients: %s",
        storage.size(),
        len(storage.all()),
    )


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="newsrelay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot with periodic ingest and broadcast")
    subparsers.add_parser("ingest", help="Fetch the feed once and store new items")
    subparsers.add_parser("stats", help="Show stored news and recipient counts")

    args = parser.parse_args(argv)
    if args.command == "ingest":
        _ingest()
        return
    if args.command == "stats":
        _stats()
        return
    _run()


if __name__ == "__main__":
    main()
