"""Broadcast engine: ingest, select, deliver, record.

This module is integration-agnostic. It only relies on ports for the feed,
the backing stores and outbound delivery, so the Telegram and RSS details stay
in adapters.

Each periodic step moves through a small state machine:

    ingest:     IDLE -> INGESTING -> IDLE
    broadcast:  IDLE -> SELECTING -> DELIVERING -> IDLE

Ingest and broadcast run on independent timers and may overlap, so each keeps
its own state. Failures are scoped to the step that raised them; the next tick
starts again from IDLE.

Storage ports are synchronous and may block for their whole retry budget while
a backend is down, so every store call runs in a worker thread and the event
loop keeps serving timers and bot updates.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from core.config import BroadcastConfig
from core.errors import StoreUnavailable, TransportError
from core.ingestion import ingest_items
from core.models import CycleReport, DeliveryOutcome, DeliveryStatus, IngestResult, RegistrationResult
from core.ports import DedupStorePort, DeliveryTrackerPort, FeedPort, RecipientRegistryPort, SenderPort
from core.selection import get_policy, pick_one

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class EngineState(str, Enum):
    IDLE = "idle"
    INGESTING = "ingesting"
    SELECTING = "selecting"
    DELIVERING = "delivering"


class BroadcastEngine:
    """Orchestrates dedup ingestion and per-recipient fan-out."""

    def __init__(
        self,
        feed: FeedPort,
        dedup_store: DedupStorePort,
        registry: RecipientRegistryPort,
        tracker: DeliveryTrackerPort,
        sender: SenderPort,
        config: BroadcastConfig,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._feed = feed
        self._dedup = dedup_store
        self._registry = registry
        self._tracker = tracker
        self._sender = sender
        self._config = config
        self._select = get_policy(config.selection_policy)
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.ingest_state = EngineState.IDLE
        self.broadcast_state = EngineState.IDLE

    async def _store(self, call: Callable[..., T], *args: object) -> T:
        return await asyncio.to_thread(call, *args)

    async def ingest(self) -> IngestResult:
        """Fetch the feed and record every item not seen before.

        A fetch failure raises TransportError and leaves the store untouched.
        """

        self.ingest_state = EngineState.INGESTING
        try:
            items = await self._feed.fetch()
            result = await self._store(ingest_items, items, self._dedup)
            try:
                total = await self._store(self._dedup.size)
            except StoreUnavailable:
                LOGGER.exception("Failed to read dedup store size after ingest")
                total = None
        finally:
            self.ingest_state = EngineState.IDLE

        if result.added:
            LOGGER.info("Added %s news items (fetched=%s, stored=%s)", result.added, result.fetched, total)
        if result.failed:
            LOGGER.warning("%s items could not be stored this cycle", result.failed)
        return IngestResult(
            fetched=result.fetched,
            added=result.added,
            skipped=result.skipped,
            failed=result.failed,
            total=total,
        )

    async def purge_expired(self) -> int:
        """Drop expired fingerprints and delivery records from the backend."""

        removed = await self._store(self._dedup.purge_expired)
        if removed:
            LOGGER.info("Purged %s expired records", removed)
        return removed

    async def run_broadcast_cycle(self) -> CycleReport:
        """Offer one not-yet-delivered item to every registered recipient.

        StoreUnavailable while reading the item set or the registry aborts the
        cycle. Anything scoped to one recipient is logged and skipped.
        """

        self.broadcast_state = EngineState.SELECTING
        try:
            fingerprints = await self._store(self._dedup.members)
            recipients = await self._store(self._registry.all)
            report = CycleReport(recipients=len(recipients))
            if not fingerprints:
                LOGGER.info("No news available to broadcast")
                return report

            pools = await self._store(self._candidate_pools, recipients, fingerprints)
            assignments = self._select(pools, self._rng)

            self.broadcast_state = EngineState.DELIVERING
            for recipient_id in sorted(recipients):
                if recipient_id not in pools:
                    report.outcomes.append(DeliveryOutcome(recipient_id, DeliveryStatus.FAILED))
                    continue
                fingerprint = assignments.get(recipient_id)
                if fingerprint is None:
                    LOGGER.debug("Nothing new to send to %s", recipient_id)
                    report.outcomes.append(DeliveryOutcome(recipient_id, DeliveryStatus.NO_CONTENT))
                    continue
                report.outcomes.append(await self._deliver(recipient_id, fingerprint))
        finally:
            self.broadcast_state = EngineState.IDLE

        LOGGER.info(
            "Broadcast cycle complete: recipients=%s, delivered=%s, failed=%s",
            report.recipients,
            report.delivered,
            report.failed,
        )
        return report

    async def register_recipient(self, recipient_id: str) -> RegistrationResult:
        """Register a recipient and snapshot the registry on first sight."""

        result = await self._store(self._registry.register, recipient_id)
        if result.already_registered:
            return result

        LOGGER.info("Registered new recipient %s", recipient_id)
        try:
            if await self._store(self._registry.snapshot):
                LOGGER.info("Recipient registry snapshot created")
        except StoreUnavailable:
            # The registration itself is committed; a missing snapshot is
            # retried on the next new registration.
            LOGGER.exception("Failed to snapshot recipient registry")
        return result

    async def deliver_to(self, recipient_id: str) -> DeliveryOutcome:
        """Select and deliver one item to a single recipient."""

        fingerprints = await self._store(self._dedup.members)
        pool = await self._store(self._tracker.available_for, recipient_id, fingerprints)
        fingerprint = pick_one(pool, self._rng)
        if fingerprint is None:
            return DeliveryOutcome(recipient_id, DeliveryStatus.NO_CONTENT)
        return await self._deliver(recipient_id, fingerprint)

    async def welcome(self, recipient_id: str) -> DeliveryOutcome:
        """Deliver the first item to a new recipient after a short grace period."""

        await self._sleep(self._config.welcome_delay_seconds)
        outcome = await self.deliver_to(recipient_id)
        if outcome.delivered:
            LOGGER.info("Sent welcome news to %s", recipient_id)
        return outcome

    async def get_one_for(self, recipient_id: str) -> DeliveryOutcome:
        """Handle an on-demand request; NO_CONTENT when nothing can be sent."""

        if await self._store(self._dedup.size) == 0:
            return DeliveryOutcome(recipient_id, DeliveryStatus.NO_CONTENT)
        return await self.deliver_to(recipient_id)

    def _candidate_pools(self, recipients: Iterable[str], fingerprints: set[str]) -> dict[str, set[str]]:
        pools: dict[str, set[str]] = {}
        for recipient_id in recipients:
            try:
                pools[recipient_id] = self._tracker.available_for(recipient_id, fingerprints)
            except StoreUnavailable:
                LOGGER.exception("Failed to load delivered news for %s", recipient_id)
        return pools

    async def _deliver(self, recipient_id: str, fingerprint: str) -> DeliveryOutcome:
        try:
            await self._sender.send(recipient_id, fingerprint)
        except TransportError as exc:
            # No retry within the cycle: the item stays undelivered and is
            # offered again on the next tick.
            LOGGER.warning("Failed to send news to %s: %s", recipient_id, exc)
            return DeliveryOutcome(recipient_id, DeliveryStatus.FAILED, fingerprint)

        try:
            await self._store(self._tracker.mark_delivered, recipient_id, fingerprint)
        except StoreUnavailable:
            LOGGER.exception("Sent news to %s but failed to record the delivery", recipient_id)
        return DeliveryOutcome(recipient_id, DeliveryStatus.DELIVERED, fingerprint)
