"""Telegram client factory for newsrelay.

The bot logs in with a bot token but still needs API_ID/API_HASH because
Telethon talks MTProto rather than the HTTP Bot API.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv
from telethon import TelegramClient


@dataclass(frozen=True)
class BotCredentials:
    api_id: int
    api_hash: str
    bot_token: str
    session_name: str = "newsrelay"


def load_credentials() -> BotCredentials:
    """Read every bot secret from the environment (or .env) in one pass."""

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    token = os.getenv("TELEGRAM_BOT_TOKEN")

    # Fail fast: without these the bot can neither connect nor authorize.
    missing = [
        name
        for name, value in (("API_ID", api_id), ("API_HASH", api_hash), ("TELEGRAM_BOT_TOKEN", token))
        if not value
    ]
    if missing:
        raise RuntimeError(f"Missing {', '.join(missing)} in environment")

    return BotCredentials(
        api_id=int(api_id),
        api_hash=api_hash,
        bot_token=token,
        session_name=os.getenv("SESSION_NAME", "newsrelay"),
    )


def build_client(credentials: BotCredentials) -> TelegramClient:
    """Create the Telethon client; the session file is named after the bot session."""

    logging.getLogger(__name__).info("Initializing Telegram client (session %s)", credentials.session_name)
    return TelegramClient(credentials.session_name, credentials.api_id, credentials.api_hash)
