"""Candidate selection policies (core domain).

Both policies take the per-recipient candidate pools computed by the delivery
tracker and return the fingerprint to offer each recipient, or None when that
recipient has nothing to receive this cycle.

- per_recipient: every recipient gets an independent uniform pick from its own
  pool, so recipients may receive different items in the same cycle.
- shared: one fingerprint is picked uniformly from the union of all pools and
  offered to every recipient whose pool still contains it.
"""

from __future__ import annotations

import random
from typing import Callable, Dict, Iterable, Mapping, Optional

Assignments = Dict[str, Optional[str]]


def pick_one(pool: Iterable[str], rng: random.Random) -> Optional[str]:
    """Pick uniformly from a pool; None if it is empty."""

    # Sorting makes the pick reproducible for a seeded rng.
    candidates = sorted(pool)
    if not candidates:
        return None
    return rng.choice(candidates)


def select_per_recipient(pools: Mapping[str, set[str]], rng: random.Random) -> Assignments:
    return {recipient_id: pick_one(pool, rng) for recipient_id, pool in pools.items()}


def select_shared(pools: Mapping[str, set[str]], rng: random.Random) -> Assignments:
    union: set[str] = set()
    for pool in pools.values():
        union.update(pool)

    chosen = pick_one(union, rng)
    return {
        recipient_id: chosen if chosen is not None and chosen in pool else None
        for recipient_id, pool in pools.items()
    }


POLICIES: Dict[str, Callable[[Mapping[str, set[str]], random.Random], Assignments]] = {
    "per_recipient": select_per_recipient,
    "shared": select_shared,
}


def get_policy(name: str) -> Callable[[Mapping[str, set[str]], random.Random], Assignments]:
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unsupported selection policy: {name}") from None
