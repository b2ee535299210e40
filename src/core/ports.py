"""Ports (interfaces) used by the core engine.

Ports define the minimal contracts for storage, feed and delivery adapters so
that the core can be reused with different backends. Storage ports are
synchronous and may block; the engine calls them from worker threads.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from core.models import FeedItem, RegistrationResult


class DedupStorePort(Protocol):
    """Fingerprints ever ingested, each with its own retention expiry."""

    def exists(self, fingerprint: str) -> bool:
        ...

    def insert(self, fingerprint: str) -> None:
        ...

    def size(self) -> int:
        ...

    def members(self) -> set[str]:
        ...

    def purge_expired(self) -> int:
        ...


class RecipientRegistryPort(Protocol):
    """Known recipients. Registration is idempotent."""

    def register(self, recipient_id: str) -> RegistrationResult:
        ...

    def all(self) -> set[str]:
        ...

    def snapshot(self) -> bool:
        ...


class DeliveryTrackerPort(Protocol):
    """Per-recipient delivered fingerprints with a per-pair expiry."""

    def delivered(self, recipient_id: str, fingerprint: str) -> bool:
        ...

    def mark_delivered(self, recipient_id: str, fingerprint: str) -> None:
        ...

    def available_for(self, recipient_id: str, fingerprints: Iterable[str]) -> set[str]:
        ...


class FeedPort(Protocol):
    """Source of feed items."""

    async def fetch(self) -> list[FeedItem]:
        ...


class SenderPort(Protocol):
    """Outbound message transport."""

    async def send(self, recipient_id: str, text: str) -> None:
        ...
