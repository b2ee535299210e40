"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class FeedItem:
    """One item pulled from the feed. Only title and body form its identity."""

    title: str
    body: str
    link: Optional[str] = None


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one ingestion batch."""

    fetched: int
    added: int
    skipped: int = 0
    failed: int = 0
    total: Optional[int] = None


@dataclass(frozen=True)
class RegistrationResult:
    already_registered: bool


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    NO_CONTENT = "no_content"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of offering one item to one recipient."""

    recipient_id: str
    status: DeliveryStatus
    fingerprint: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED


@dataclass
class CycleReport:
    """Per-cycle tally of delivery outcomes."""

    recipients: int = 0
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    def count(self, status: DeliveryStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def delivered(self) -> int:
        return self.count(DeliveryStatus.DELIVERED)

    @property
    def failed(self) -> int:
        return self.count(DeliveryStatus.FAILED)
