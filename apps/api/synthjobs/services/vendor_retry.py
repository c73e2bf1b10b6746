"""Retry policy for transient vendor failures."""

from __future__ import annotations

from collections.abc import Callable
import logging
import random
import time
from typing import TypeVar

from synthjobs.adapters.vendor import VendorUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, *, base_delay: float, jitter: float, rng: Callable[[], float] = random.random) -> float:
    """Exponential delay for the given 1-based attempt with +/- ``jitter`` spread."""
    raw = base_delay * (2 ** (attempt - 1))
    spread = (rng() * 2 - 1) * jitter
    return raw * (1 + spread)


def call_vendor_with_retry(
    operation: Callable[[], T],
    *,
    name: str,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    jitter: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run ``operation``, retrying only ``VendorUnavailableError`` up to ``max_attempts`` times."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except VendorUnavailableError as exc:
            if attempt >= max_attempts:
                logger.warning(
                    "vendor.gave_up operation=%s attempts=%s reason=%s",
                    name,
                    attempt,
                    exc,
                )
                raise
            delay = backoff_delay(attempt, base_delay=base_delay, jitter=jitter, rng=rng)
            logger.info(
                "vendor.retry operation=%s attempt=%s delay=%.3f reason=%s",
                name,
                attempt,
                delay,
                exc,
            )
            sleep(delay)
