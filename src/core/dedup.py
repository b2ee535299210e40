"""Deduplication helpers (core domain)."""

from __future__ import annotations

from typing import Optional

from core.models import FeedItem

TERMINAL_PUNCTUATION = (".", "!", "?")


def canonical_content(title: str, body: str) -> str:
    """Join title and body into the single string that identifies an item.

    A title that already ends in terminal punctuation is joined with a space,
    anything else gets ". " so the result never carries double punctuation.
    """

    if not title:
        return body
    if not body:
        return title
    separator = " " if title.endswith(TERMINAL_PUNCTUATION) else ". "
    return f"{title}{separator}{body}"


def compute_fingerprint(item: FeedItem) -> Optional[str]:
    """Return the dedup key for an item, or None when it has no content.

    The fingerprint is the canonical content itself and is compared by exact
    equality. No hashing or whitespace normalization is applied.
    """

    content = canonical_content(item.title, item.body)
    return content or None
