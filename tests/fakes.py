"""Hand-written fakes for the core ports."""

from __future__ import annotations

from typing import Iterable, Optional

from core.errors import StoreUnavailable, TransportError
from core.models import FeedItem, RegistrationResult

HOUR = 3600


class FakeStorage:
    """In-memory dedup store, registry and tracker with expiry timestamps."""

    def __init__(self, dedup_ttl: float = 48 * HOUR, delivery_ttl: float = 96 * HOUR) -> None:
        self.now = 0.0
        self.dedup_ttl = dedup_ttl
        self.delivery_ttl = delivery_ttl
        self.news: dict[str, float] = {}
        self.recipients: set[str] = set()
        self.snapshots: list[set[str]] = []
        self.sent: dict[tuple[str, str], float] = {}
        self.broken_fingerprints: set[str] = set()
        self.broken_recipients: set[str] = set()
        self.snapshot_broken = False

    def exists(self, fingerprint: str) -> bool:
        if fingerprint in self.broken_fingerprints:
            raise StoreUnavailable("boom")
        return self.news.get(fingerprint, -1) > self.now

    def insert(self, fingerprint: str) -> None:
        self.news[fingerprint] = self.now + self.dedup_ttl

    def size(self) -> int:
        return len(self.members())

    def members(self) -> set[str]:
        return {fingerprint for fingerprint, expires in self.news.items() if expires > self.now}

    def purge_expired(self) -> int:
        expired_news = [fingerprint for fingerprint, expires in self.news.items() if expires <= self.now]
        expired_sent = [pair for pair, expires in self.sent.items() if expires <= self.now]
        for fingerprint in expired_news:
            del self.news[fingerprint]
        for pair in expired_sent:
            del self.sent[pair]
        return len(expired_news) + len(expired_sent)

    def register(self, recipient_id: str) -> RegistrationResult:
        already = recipient_id in self.recipients
        self.recipients.add(recipient_id)
        return RegistrationResult(already_registered=already)

    def all(self) -> set[str]:
        return set(self.recipients)

    def snapshot(self) -> bool:
        if self.snapshot_broken:
            raise StoreUnavailable("snapshot failed")
        if self.snapshots or not self.recipients:
            return False
        self.snapshots.append(set(self.recipients))
        return True

    def delivered(self, recipient_id: str, fingerprint: str) -> bool:
        return self.sent.get((recipient_id, fingerprint), -1) > self.now

    def mark_delivered(self, recipient_id: str, fingerprint: str) -> None:
        self.sent[(recipient_id, fingerprint)] = self.now + self.delivery_ttl

    def available_for(self, recipient_id: str, fingerprints: Iterable[str]) -> set[str]:
        if recipient_id in self.broken_recipients:
            raise StoreUnavailable("tracker down")
        return {fingerprint for fingerprint in fingerprints if not self.delivered(recipient_id, fingerprint)}


class FakeFeed:
    def __init__(self, items: Optional[list[FeedItem]] = None, error: Optional[Exception] = None) -> None:
        self.items = items or []
        self.error = error

    async def fetch(self) -> list[FeedItem]:
        if self.error:
            raise self.error
        return list(self.items)


class FakeSender:
    def __init__(self, failing: Optional[set[str]] = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.failing = failing or set()

    async def send(self, recipient_id: str, text: str) -> None:
        if recipient_id in self.failing:
            raise TransportError("chat not found")
        self.sent.append((recipient_id, text))


