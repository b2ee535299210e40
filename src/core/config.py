"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

SELECTION_POLICIES = ("per_recipient", "shared")


@dataclass(frozen=True)
class RetentionConfig:
    """Retention windows for the dedup store and the delivery tracker."""

    dedup_ttl_hours: int = 48
    delivery_ttl_hours: int = 96

    @property
    def dedup_ttl_seconds(self) -> int:
        return self.dedup_ttl_hours * 3600

    @property
    def delivery_ttl_seconds(self) -> int:
        return self.delivery_ttl_hours * 3600


@dataclass(frozen=True)
class BroadcastConfig:
    """Broadcast engine settings."""

    selection_policy: str = "per_recipient"
    welcome_delay_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.selection_policy not in SELECTION_POLICIES:
            raise ValueError(f"Unsupported selection policy: {self.selection_policy}")


@dataclass(frozen=True)
class RetryConfig:
    """Bounded retry policy applied underneath backing-store calls."""

    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 3.0
