"""RSS feed adapter.

Fetches the feed over HTTP with aiohttp and parses it with feedparser. Any
network, HTTP status or parse failure surfaces as TransportError so the
ingest step can abort cleanly.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp
import feedparser

from core.errors import TransportError
from core.models import FeedItem

LOGGER = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "newsrelay/1.0",
    "Accept": "application/rss+xml, application/xml, text/xml, */*",
}


def parse_feed(content: str) -> list[FeedItem]:
    """Parse RSS/Atom text into feed items, preserving feed order."""

    parsed = feedparser.parse(content)
    if parsed.bozo and not parsed.entries:
        raise TransportError(f"Failed to parse feed: {parsed.get('bozo_exception')}")

    items = []
    for entry in parsed.entries:
        items.append(
            FeedItem(
                title=(entry.get("title") or "").strip(),
                body=(entry.get("summary") or entry.get("description") or "").strip(),
                link=entry.get("link"),
            )
        )
    return items


class RssFeed:
    """FeedPort implementation for a single RSS URL."""

    def __init__(self, url: str, timeout_seconds: float = 15) -> None:
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def fetch(self) -> list[FeedItem]:
        LOGGER.debug("Fetching feed %s", self._url)
        try:
            async with aiohttp.ClientSession(timeout=self._timeout, headers=HEADERS) as session:
                async with session.get(self._url) as response:
                    if response.status != 200:
                        raise TransportError(f"Feed {self._url} returned HTTP {response.status}")
                    content = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Failed to fetch feed {self._url}: {exc}") from exc

        items = parse_feed(content)
        LOGGER.debug("Fetched %s items from %s", len(items), self._url)
        return items
