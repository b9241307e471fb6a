"""Retry timing shared by the fetcher and the ingestion sinks."""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Exponential backoff with additive jitter.

    ``max_attempts`` counts every attempt including the first one, so a value
    of 3 means one initial try plus two retries.
    """

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: float = 1.0
    max_attempts: int = 3

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Seconds to wait after the ``attempt``-th failure (1-based)."""

        attempt = max(1, attempt)
        delay = min(self.max_delay, self.base_delay * self.multiplier ** (attempt - 1))
        if self.jitter > 0:
            delay += (rng or random).uniform(0, self.jitter)
        return delay

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


__all__ = ["BackoffPolicy"]
