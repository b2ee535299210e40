"""Bot command handling.

Maps incoming command text to engine calls and replies. Telethon specifics
stay in app.py; this router only needs a recipient id and the raw text, which
keeps it testable without a live client.
"""

from __future__ import annotations

import logging
from typing import Optional

from adapters import bot_messages
from core.engine import BroadcastEngine
from core.errors import StoreUnavailable, TransportError
from core.models import DeliveryStatus
from core.ports import SenderPort

LOGGER = logging.getLogger(__name__)


def parse_command(text: Optional[str]) -> Optional[str]:
    """Return the lowercased command name of ``/cmd@BotName args``, if any."""

    if not text or not text.startswith("/"):
        return None
    parts = text[1:].split(maxsplit=1)
    if not parts:
        return None
    name = parts[0].split("@", 1)[0].lower()
    return name or None


class CommandRouter:
    """Dispatch /start and /getnews to the broadcast engine."""

    def __init__(self, engine: BroadcastEngine, sender: SenderPort) -> None:
        self._engine = engine
        self._sender = sender

    async def handle(self, recipient_id: str, text: Optional[str]) -> None:
        command = parse_command(text)
        if command is None:
            return

        try:
            if command == "start":
                await self._start(recipient_id)
            elif command == "getnews":
                await self._get_news(recipient_id)
            else:
                await self._reply(recipient_id, bot_messages.unknown_command())
        except StoreUnavailable:
            LOGGER.exception("Store unavailable while handling /%s for %s", command, recipient_id)
            await self._reply(recipient_id, bot_messages.STORE_ERROR)

    async def _start(self, recipient_id: str) -> None:
        result = await self._engine.register_recipient(recipient_id)
        if result.already_registered:
            await self._reply(recipient_id, bot_messages.ALREADY_SUBSCRIBED)
            return

        await self._reply(recipient_id, bot_messages.WELCOME)
        await self._engine.welcome(recipient_id)

    async def _get_news(self, recipient_id: str) -> None:
        outcome = await self._engine.get_one_for(recipient_id)
        if outcome.status is DeliveryStatus.NO_CONTENT:
            await self._reply(recipient_id, bot_messages.NO_NEWS)

    async def _reply(self, recipient_id: str, text: str) -> None:
        try:
            await self._sender.send(recipient_id, text)
        except TransportError as exc:
            LOGGER.warning("Failed to reply to %s: %s", recipient_id, exc)
