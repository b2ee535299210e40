"""Telegram delivery adapter.

Sends plain-text messages through a Telethon client running in bot mode.
"""

from __future__ import annotations

import logging

from telethon import errors

from adapters.bot_messages import fit_message
from core.errors import TransportError

LOGGER = logging.getLogger(__name__)


def resolve_peer(recipient_id: str):
    """Telegram chat ids are stored as strings; Telethon wants ints for them."""

    try:
        return int(recipient_id)
    except ValueError:
        return recipient_id


class TelegramSender:
    """SenderPort implementation backed by a Telethon client."""

    def __init__(self, client) -> None:
        self._client = client

    async def send(self, recipient_id: str, text: str) -> None:
        """Send ``text`` as-is; news content must not be parsed as Markdown."""

        try:
            await self._client.send_message(resolve_peer(recipient_id), fit_message(text), parse_mode=None)
        except (errors.RPCError, ValueError, ConnectionError) as exc:
            raise TransportError(f"Telegram send to {recipient_id} failed: {exc}") from exc
