from __future__ import annotations

import asyncio
import random
import time
from typing import Optional

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.config import BroadcastConfig, RetentionConfig, RetryConfig
from core.engine import BroadcastEngine, EngineState
from core.errors import StoreUnavailable, TransportError
from core.models import DeliveryStatus, FeedItem
from fakes import HOUR, FakeFeed, FakeSender, FakeStorage


async def _no_sleep(_: float) -> None:
    return None


def _engine(
    storage: FakeStorage,
    feed: Optional[FakeFeed] = None,
    sender: Optional[FakeSender] = None,
    policy: str = "per_recipient",
) -> BroadcastEngine:
    return BroadcastEngine(
        feed=feed or FakeFeed(),
        dedup_store=storage,
        registry=storage,
        tracker=storage,
        sender=sender or FakeSender(),
        config=BroadcastConfig(selection_policy=policy, welcome_delay_seconds=5),
        rng=random.Random(42),
        sleep=_no_sleep,
    )


STORM = FeedItem(title="Storm hits city", body="Flooding reported")
MARKET = FeedItem(title="Markets rally!", body="Stocks up")


def test_ingest_same_item_twice_adds_once() -> None:
    storage = FakeStorage()
    engine = _engine(storage, feed=FakeFeed([STORM]))

    first = asyncio.run(engine.ingest())
    second = asyncio.run(engine.ingest())

    assert first.added == 1
    assert second.added == 0
    assert second.total == 1
    assert storage.members() == {"Storm hits city. Flooding reported"}


def test_ingest_dedups_within_batch_by_content() -> None:
    duplicate = FeedItem(title="Storm hits city", body="Flooding reported", link="https://other.example")
    storage = FakeStorage()
    engine = _engine(storage, feed=FakeFeed([STORM, duplicate, MARKET]))

    result = asyncio.run(engine.ingest())

    assert result.fetched == 3
    assert result.added == 2
    assert result.skipped == 1


def test_ingest_fetch_failure_raises_and_resets_state() -> None:
    storage = FakeStorage()
    engine = _engine(storage, feed=FakeFeed(error=TransportError("timeout")))

    with pytest.raises(TransportError):
        asyncio.run(engine.ingest())

    assert engine.ingest_state is EngineState.IDLE
    assert storage.news == {}


def test_ingest_skips_item_on_store_error() -> None:
    storage = FakeStorage()
    storage.broken_fingerprints.add("Storm hits city. Flooding reported")
    engine = _engine(storage, feed=FakeFeed([STORM, MARKET]))

    result = asyncio.run(engine.ingest())

    assert result.added == 1
    assert result.failed == 1
    assert storage.members() == {"Markets rally! Stocks up"}


def test_ingest_reingests_after_expiry() -> None:
    storage = FakeStorage()
    engine = _engine(storage, feed=FakeFeed([STORM]))
    asyncio.run(engine.ingest())

    storage.now += 48 * HOUR + 1

    assert asyncio.run(engine.ingest()).added == 1


def test_broadcast_never_repeats_item_for_recipient() -> None:
    storage = FakeStorage()
    storage.insert("a")
    storage.insert("b")
    storage.register("1")
    sender = FakeSender()
    engine = _engine(storage, sender=sender)

    reports = [asyncio.run(engine.run_broadcast_cycle()) for _ in range(3)]

    texts = [text for _, text in sender.sent]
    assert sorted(texts) == ["a", "b"]
    assert reports[2].outcomes[0].status is DeliveryStatus.NO_CONTENT
    assert engine.broadcast_state is EngineState.IDLE


def test_delivery_reeligible_after_ttl() -> None:
    storage = FakeStorage(dedup_ttl=1000 * HOUR)
    storage.insert("a")
    storage.register("1")
    sender = FakeSender()
    engine = _engine(storage, sender=sender)

    asyncio.run(engine.run_broadcast_cycle())
    asyncio.run(engine.run_broadcast_cycle())
    assert sender.sent == [("1", "a")]

    storage.now += 96 * HOUR + 1
    asyncio.run(engine.run_broadcast_cycle())
    assert sender.sent == [("1", "a"), ("1", "a")]


def test_broadcast_send_failure_continues_and_retries_next_cycle() -> None:
    storage = FakeStorage()
    storage.insert("a")
    for recipient_id in ("1", "2", "3"):
        storage.register(recipient_id)
    sender = FakeSender(failing={"2"})
    engine = _engine(storage, sender=sender)

    report = asyncio.run(engine.run_broadcast_cycle())

    assert report.delivered == 2
    assert report.failed == 1
    assert not storage.delivered("2", "a")
    assert {recipient for recipient, _ in sender.sent} == {"1", "3"}

    sender.failing.clear()
    asyncio.run(engine.run_broadcast_cycle())
    assert ("2", "a") in sender.sent


def test_broadcast_skips_recipient_with_tracker_error() -> None:
    storage = FakeStorage()
    storage.insert("a")
    storage.register("1")
    storage.register("2")
    storage.broken_recipients.add("1")
    sender = FakeSender()
    engine = _engine(storage, sender=sender)

    report = asyncio.run(engine.run_broadcast_cycle())

    assert sender.sent == [("2", "a")]
    assert report.failed == 1


def test_broadcast_aborts_when_store_unavailable() -> None:
    storage = FakeStorage()

    def broken() -> set[str]:
        raise StoreUnavailable("down")

    storage.members = broken  # type: ignore[method-assign]
    engine = _engine(storage)

    with pytest.raises(StoreUnavailable):
        asyncio.run(engine.run_broadcast_cycle())
    assert engine.broadcast_state is EngineState.IDLE


def test_shared_policy_sends_same_item_to_everyone_eligible() -> None:
    storage = FakeStorage()
    storage.insert("a")
    storage.insert("b")
    for recipient_id in ("1", "2", "3"):
        storage.register(recipient_id)
    sender = FakeSender()
    engine = _engine(storage, sender=sender, policy="shared")

    asyncio.run(engine.run_broadcast_cycle())

    texts = {text for _, text in sender.sent}
    assert len(sender.sent) == 3
    assert len(texts) == 1


def test_shared_policy_skips_recipient_who_already_has_pick() -> None:
    storage = FakeStorage()
    storage.insert("a")
    storage.register("1")
    storage.register("2")
    storage.mark_delivered("1", "a")
    sender = FakeSender()
    engine = _engine(storage, sender=sender, policy="shared")

    asyncio.run(engine.run_broadcast_cycle())

    assert sender.sent == [("2", "a")]


def test_get_one_for_empty_store_is_not_an_error() -> None:
    storage = FakeStorage()
    sender = FakeSender()
    engine = _engine(storage, sender=sender)

    outcome = asyncio.run(engine.get_one_for("1"))

    assert outcome.status is DeliveryStatus.NO_CONTENT
    assert sender.sent == []


def test_get_one_for_marks_delivery() -> None:
    storage = FakeStorage()
    storage.insert("a")
    storage.insert("b")
    engine = _engine(storage)

    first = asyncio.run(engine.get_one_for("1"))
    second = asyncio.run(engine.get_one_for("1"))
    third = asyncio.run(engine.get_one_for("1"))

    assert first.delivered and second.delivered
    assert {first.fingerprint, second.fingerprint} == {"a", "b"}
    assert third.status is DeliveryStatus.NO_CONTENT


def test_register_recipient_snapshots_once() -> None:
    storage = FakeStorage()
    engine = _engine(storage)

    assert asyncio.run(engine.register_recipient("1")).already_registered is False
    assert asyncio.run(engine.register_recipient("1")).already_registered is True
    asyncio.run(engine.register_recipient("2"))

    assert storage.recipients == {"1", "2"}
    assert storage.snapshots == [{"1"}]


def test_register_survives_snapshot_failure() -> None:
    storage = FakeStorage()
    storage.snapshot_broken = True
    engine = _engine(storage)

    result = asyncio.run(engine.register_recipient("1"))

    assert result.already_registered is False
    assert storage.recipients == {"1"}


def test_welcome_waits_then_delivers_to_single_recipient() -> None:
    storage = FakeStorage()
    storage.insert("a")
    storage.register("other")
    sender = FakeSender()
    slept: list[float] = []

    async def record_sleep(seconds: float) -> None:
        slept.append(seconds)

    engine = BroadcastEngine(
        feed=FakeFeed(),
        dedup_store=storage,
        registry=storage,
        tracker=storage,
        sender=sender,
        config=BroadcastConfig(welcome_delay_seconds=5),
        sleep=record_sleep,
    )

    outcome = asyncio.run(engine.welcome("1"))

    assert slept == [5]
    assert outcome.delivered
    assert sender.sent == [("1", "a")]


def test_store_outage_does_not_block_event_loop(tmp_path) -> None:
    storage = SQLiteStorage(
        str(tmp_path / "missing" / "newsrelay.db"),
        RetentionConfig(),
        RetryConfig(attempts=3, base_delay=0.05, max_delay=0.1),
    )
    engine = BroadcastEngine(
        feed=FakeFeed([STORM, MARKET]),
        dedup_store=storage,
        registry=storage,
        tracker=storage,
        sender=FakeSender(),
        config=BroadcastConfig(),
        sleep=_no_sleep,
    )

    async def scenario() -> tuple:
        gaps: list[float] = []
        done = asyncio.Event()

        async def heartbeat() -> None:
            last = time.monotonic()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        beat = asyncio.create_task(heartbeat())
        try:
            result = await engine.ingest()
        finally:
            done.set()
            await beat
        return result, gaps

    result, gaps = asyncio.run(scenario())

    # Each item spends 0.25s in retries; the loop must keep ticking meanwhile.
    assert result.failed == 2
    assert result.total is None
    assert len(gaps) > 10
    assert max(gaps) < 0.2


def test_purge_keeps_storage_bounded_across_cycles() -> None:
    storage = FakeStorage()
    engine = _engine(storage)

    for day in range(10):
        for index in range(50):
            storage.insert(f"day {day} item {index}")
        storage.mark_delivered("1", f"day {day} item 0")
        storage.now += 24 * HOUR
        asyncio.run(engine.purge_expired())

    assert len(storage.news) == storage.size() == 50
    assert len(storage.sent) == 3
