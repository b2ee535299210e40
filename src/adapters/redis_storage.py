"""Redis storage adapter.

Implements the dedup store, recipient registry and delivery tracker ports on
Redis. Fingerprints and delivery records live in sorted sets scored by their
expiry timestamp, which gives every member its own TTL; reads only consider
members whose score is still in the future.

Keys (all under ``key_prefix``):
- news: sorted set of fingerprints, score = expiry
- chat_ids: set of recipient ids
- chat_ids:snapshot: one-off copy of chat_ids
- sent_news:<recipient>: sorted set of delivered fingerprints, score = expiry
"""

from __future__ import annotations

import time
from typing import Callable, Iterable, Optional, TypeVar

from redis import Redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from core.config import RetentionConfig, RetryConfig
from core.errors import StoreUnavailable
from core.models import RegistrationResult

T = TypeVar("T")


def build_redis_client(address: str, password: Optional[str], db: int, retry: RetryConfig) -> Redis:
    """Create a Redis client with a bounded retry policy.

    ``address`` is ``host`` or ``host:port``.
    """

    host, _, port = address.partition(":")
    return Redis(
        host=host or "localhost",
        port=int(port or 6379),
        password=password or None,
        db=db,
        decode_responses=True,
        retry=Retry(ExponentialBackoff(cap=retry.max_delay, base=retry.base_delay), retry.attempts),
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
        health_check_interval=30,
    )


class RedisStorage:
    """Redis-backed implementation of the three storage ports."""

    def __init__(
        self,
        client: Redis,
        retention: RetentionConfig,
        key_prefix: str = "newsrelay:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._retention = retention
        self._prefix = key_prefix
        self._clock = clock

    @property
    def news_key(self) -> str:
        return f"{self._prefix}news"

    @property
    def registry_key(self) -> str:
        return f"{self._prefix}chat_ids"

    @property
    def snapshot_key(self) -> str:
        return f"{self._prefix}chat_ids:snapshot"

    def sent_key(self, recipient_id: str) -> str:
        return f"{self._prefix}sent_news:{recipient_id}"

    def _call(self, operation: Callable[[], T]) -> T:
        # The client already retried connection errors with backoff.
        try:
            return operation()
        except RedisError as exc:
            raise StoreUnavailable(f"Redis unavailable: {exc}") from exc

    def _live(self) -> str:
        return f"({self._clock()}"

    def ping(self) -> bool:
        return bool(self._call(self._client.ping))

    # Dedup store

    def exists(self, fingerprint: str) -> bool:
        score = self._call(lambda: self._client.zscore(self.news_key, fingerprint))
        return score is not None and score > self._clock()

    def insert(self, fingerprint: str) -> None:
        expires_at = self._clock() + self._retention.dedup_ttl_seconds
        self._call(lambda: self._client.zadd(self.news_key, {fingerprint: expires_at}))

    def size(self) -> int:
        return int(self._call(lambda: self._client.zcount(self.news_key, self._live(), "+inf")))

    def members(self) -> set[str]:
        return set(self._call(lambda: self._client.zrangebyscore(self.news_key, self._live(), "+inf")))

    def purge_expired(self) -> int:
        """Drop expired fingerprints and delivery records."""

        now = self._clock()

        def purge() -> int:
            removed = self._client.zremrangebyscore(self.news_key, "-inf", now)
            for key in self._client.scan_iter(match=self.sent_key("*")):
                removed += self._client.zremrangebyscore(key, "-inf", now)
            return removed

        return self._call(purge)

    # Recipient registry

    def register(self, recipient_id: str) -> RegistrationResult:
        added = self._call(lambda: self._client.sadd(self.registry_key, recipient_id))
        return RegistrationResult(already_registered=added == 0)

    def all(self) -> set[str]:
        return set(self._call(lambda: self._client.smembers(self.registry_key)))

    def snapshot(self) -> bool:
        """Copy a non-empty registry to the snapshot key unless one already exists."""

        def take() -> bool:
            if self._client.exists(self.snapshot_key) or not self._client.scard(self.registry_key):
                return False
            self._client.sunionstore(self.snapshot_key, [self.registry_key])
            return True

        return self._call(take)

    def snapshot_members(self) -> set[str]:
        return set(self._call(lambda: self._client.smembers(self.snapshot_key)))

    # Delivery tracker

    def delivered(self, recipient_id: str, fingerprint: str) -> bool:
        score = self._call(lambda: self._client.zscore(self.sent_key(recipient_id), fingerprint))
        return score is not None and score > self._clock()

    def mark_delivered(self, recipient_id: str, fingerprint: str) -> None:
        key = self.sent_key(recipient_id)
        now = self._clock()
        ttl = self._retention.delivery_ttl_seconds

        def mark() -> None:
            pipe = self._client.pipeline()
            pipe.zadd(key, {fingerprint: now + ttl})
            pipe.zremrangebyscore(key, "-inf", now)
            # The whole key goes away once its newest record expires.
            pipe.expire(key, ttl)
            pipe.execute()

        self._call(mark)

    def available_for(self, recipient_id: str, fingerprints: Iterable[str]) -> set[str]:
        delivered = self._call(
            lambda: self._client.zrangebyscore(self.sent_key(recipient_id), self._live(), "+inf")
        )
        return set(fingerprints) - set(delivered)
