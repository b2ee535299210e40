"""SQLite storage adapter.

Implements the dedup store, recipient registry and delivery tracker ports on
a single SQLite database. Expiry is stored per row as a unix timestamp and
checked on read, so an expired row behaves exactly like a missing one even
before ``purge_expired`` removes it.
"""

from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, TypeVar

from core.config import RetentionConfig, RetryConfig
from core.errors import StoreUnavailable
from core.models import RegistrationResult
from core.retry import call_with_retry

T = TypeVar("T")


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies all three storage ports."""

    def __init__(
        self,
        db_path: str,
        retention: RetentionConfig,
        retry: RetryConfig = RetryConfig(),
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._db_path = db_path
        self._retention = retention
        self._retry = retry
        self._clock = clock
        self._sleep = sleep

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5)
        conn.row_factory = sqlite3.Row
        return conn

    def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        def attempt() -> T:
            with self._connect() as conn:
                return operation(conn)

        try:
            return call_with_retry(attempt, (sqlite3.OperationalError,), self._retry, sleep=self._sleep)
        except sqlite3.OperationalError as exc:
            raise StoreUnavailable(f"SQLite store {self._db_path} unavailable: {exc}") from exc

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - news: ingested fingerprints with their retention expiry
        - recipients: registered recipient ids
        - recipients_snapshot: durable copy of recipients, written once
        - deliveries: (recipient, fingerprint) pairs with their own expiry
        """

        def create(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS news (
                    fingerprint TEXT PRIMARY KEY,
                    expires_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS recipients (
                    recipient_id TEXT PRIMARY KEY,
                    registered_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS recipients_snapshot (
                    recipient_id TEXT PRIMARY KEY,
                    taken_at TIMESTAMP NOT NULL
                )
                """
            )
            # One row per delivered pair; the pair's expiry is independent of
            # the fingerprint's expiry in news.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS deliveries (
                    recipient_id TEXT NOT NULL,
                    fingerprint TEXT NOT NULL,
                    expires_at REAL NOT NULL,
                    PRIMARY KEY (recipient_id, fingerprint)
                )
                """
            )

        self._run(create)

    # Dedup store

    def exists(self, fingerprint: str) -> bool:
        """Check if a fingerprint is stored and not yet expired."""

        now = self._clock()
        row = self._run(
            lambda conn: conn.execute(
                "SELECT 1 FROM news WHERE fingerprint = ? AND expires_at > ?",
                (fingerprint, now),
            ).fetchone()
        )
        return row is not None

    def insert(self, fingerprint: str) -> None:
        """Insert a fingerprint, refreshing its expiry if it is already there."""

        expires_at = self._clock() + self._retention.dedup_ttl_seconds
        self._run(
            lambda conn: conn.execute(
                """
                INSERT INTO news (fingerprint, expires_at) VALUES (?, ?)
                ON CONFLICT(fingerprint) DO UPDATE SET expires_at = excluded.expires_at
                """,
                (fingerprint, expires_at),
            )
        )

    def size(self) -> int:
        now = self._clock()
        row = self._run(
            lambda conn: conn.execute("SELECT COUNT(*) AS total FROM news WHERE expires_at > ?", (now,)).fetchone()
        )
        return int(row["total"])

    def members(self) -> set[str]:
        now = self._clock()
        rows = self._run(
            lambda conn: conn.execute("SELECT fingerprint FROM news WHERE expires_at > ?", (now,)).fetchall()
        )
        return {row["fingerprint"] for row in rows}

    def purge_expired(self) -> int:
        """Delete expired news and delivery rows and return the number removed."""

        now = self._clock()

        def purge(conn: sqlite3.Connection) -> int:
            news = conn.execute("DELETE FROM news WHERE expires_at <= ?", (now,)).rowcount
            deliveries = conn.execute("DELETE FROM deliveries WHERE expires_at <= ?", (now,)).rowcount
            return news + deliveries

        return self._run(purge)

    # Recipient registry

    def register(self, recipient_id: str) -> RegistrationResult:
        registered_at = datetime.now(timezone.utc).isoformat()
        inserted = self._run(
            lambda conn: conn.execute(
                "INSERT OR IGNORE INTO recipients (recipient_id, registered_at) VALUES (?, ?)",
                (recipient_id, registered_at),
            ).rowcount
        )
        return RegistrationResult(already_registered=inserted == 0)

    def all(self) -> set[str]:
        rows = self._run(lambda conn: conn.execute("SELECT recipient_id FROM recipients").fetchall())
        return {row["recipient_id"] for row in rows}

    def snapshot(self) -> bool:
        """Copy recipients into recipients_snapshot unless a snapshot exists.

        Returns True when the copy was written. An empty registry writes
        nothing, so it is not a snapshot either.
        """

        taken_at = datetime.now(timezone.utc).isoformat()

        def take(conn: sqlite3.Connection) -> bool:
            if conn.execute("SELECT 1 FROM recipients_snapshot LIMIT 1").fetchone():
                return False
            if not conn.execute("SELECT 1 FROM recipients LIMIT 1").fetchone():
                return False
            conn.execute(
                """
                INSERT INTO recipients_snapshot (recipient_id, taken_at)
                SELECT recipient_id, ? FROM recipients
                """,
                (taken_at,),
            )
            return True

        return self._run(take)

    def snapshot_members(self) -> set[str]:
        rows = self._run(lambda conn: conn.execute("SELECT recipient_id FROM recipients_snapshot").fetchall())
        return {row["recipient_id"] for row in rows}

    # Delivery tracker

    def delivered(self, recipient_id: str, fingerprint: str) -> bool:
        now = self._clock()
        row = self._run(
            lambda conn: conn.execute(
                """
                SELECT 1 FROM deliveries
                WHERE recipient_id = ? AND fingerprint = ? AND expires_at > ?
                """,
                (recipient_id, fingerprint, now),
            ).fetchone()
        )
        return row is not None

    def mark_delivered(self, recipient_id: str, fingerprint: str) -> None:
        expires_at = self._clock() + self._retention.delivery_ttl_seconds
        self._run(
            lambda conn: conn.execute(
                """
                INSERT INTO deliveries (recipient_id, fingerprint, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(recipient_id, fingerprint) DO UPDATE SET expires_at = excluded.expires_at
                """,
                (recipient_id, fingerprint, expires_at),
            )
        )

    def available_for(self, recipient_id: str, fingerprints: Iterable[str]) -> set[str]:
        """Return ``fingerprints`` minus what the recipient already received."""

        now = self._clock()
        rows = self._run(
            lambda conn: conn.execute(
                "SELECT fingerprint FROM deliveries WHERE recipient_id = ? AND expires_at > ?",
                (recipient_id, now),
            ).fetchall()
        )
        delivered = {row["fingerprint"] for row in rows}
        return set(fingerprints) - delivered
