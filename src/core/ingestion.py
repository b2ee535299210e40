"""Ingestion batch: canonicalize, check, insert.

Each item is handled on its own so a store hiccup on one item never aborts the
rest of the batch. Items already inserted stay correctly recorded even when a
later one fails.
"""

from __future__ import annotations

import logging
from typing import Iterable

from core.dedup import compute_fingerprint
from core.errors import StoreUnavailable
from core.models import FeedItem, IngestResult
from core.ports import DedupStorePort

LOGGER = logging.getLogger(__name__)


def ingest_items(items: Iterable[FeedItem], store: DedupStorePort) -> IngestResult:
    """Record every not-yet-seen item in the dedup store."""

    fetched = added = skipped = failed = 0
    for item in items:
        fetched += 1
        fingerprint = compute_fingerprint(item)
        if fingerprint is None:
            skipped += 1
            continue

        # Membership check must come first so items stored by a previous
        # cycle are never counted as new.
        try:
            if store.exists(fingerprint):
                skipped += 1
                continue
            store.insert(fingerprint)
        except StoreUnavailable:
            LOGGER.exception("Failed to store item %r", fingerprint[:80])
            failed += 1
            continue
        added += 1

    return IngestResult(fetched=fetched, added=added, skipped=skipped, failed=failed)
