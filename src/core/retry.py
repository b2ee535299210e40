"""Bounded retry with exponential backoff for backing-store calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

from core.config import RetryConfig

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base: float, max_delay: float) -> float:
    """Return the delay before retry number ``attempt`` (1-based)."""

    return min(max_delay, base * (2 ** max(0, attempt - 1)))


def call_with_retry(
    func: Callable[[], T],
    retry_on: Tuple[Type[BaseException], ...],
    config: RetryConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func``, retrying up to ``config.attempts`` times on ``retry_on``.

    The last exception is re-raised once the budget is spent; callers translate
    it into their own error type.
    """

    attempt = 0
    while True:
        try:
            return func()
        except retry_on as exc:
            attempt += 1
            if attempt > config.attempts:
                raise
            delay = backoff_delay(attempt, config.base_delay, config.max_delay)
            LOGGER.warning("Store call failed (%s), retry %s/%s in %.1fs", exc, attempt, config.attempts, delay)
            sleep(delay)
