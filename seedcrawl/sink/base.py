"""Ingestion sink SPI."""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Sequence

import structlog

from ..engine.backoff import BackoffPolicy
from ..errors import SinkError
from ..models import CanonicalRecord
from .schema import MAX_BATCH_SIZE


@dataclass(slots=True)
class BatchResult:
    accepted: list[CanonicalRecord] = field(default_factory=list)
    rejected: list[tuple[CanonicalRecord, str]] = field(default_factory=list)


class IngestionSink(ABC):
    """Submit canonical records in batches, retrying the whole batch.

    Transient failures are retried according to ``backoff``; once retries are
    exhausted (or on a permanent failure) :class:`SinkError` propagates to
    the caller, which still owns the batch.
    """

    kind: str = "sink"

    def __init__(
        self,
        *,
        backoff: BackoffPolicy | None = None,
        batch_size: int = MAX_BATCH_SIZE,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.backoff = backoff or BackoffPolicy(base_delay=5.0, max_attempts=4)
        self.max_batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.logger = logger or structlog.get_logger("seedcrawl.sink").bind(sink=self.kind)

    def submit_batch(self, records: Sequence[CanonicalRecord]) -> BatchResult:
        if not records:
            return BatchResult()
        if len(records) > self.max_batch_size:
            raise ValueError(
                f"batch of {len(records)} exceeds max_batch_size={self.max_batch_size}"
            )
        attempt = 0
        while True:
            attempt += 1
            try:
                result = self._submit(list(records))
            except SinkError as exc:
                exc.attempts = attempt
                if not exc.retryable or not self.backoff.should_retry(attempt):
                    raise
                delay = self.backoff.delay_for(attempt, self._rng)
                if exc.retry_after is not None:
                    delay = max(delay, exc.retry_after)
                self.logger.warning(
                    "sink_retry_scheduled",
                    attempt=attempt,
                    size=len(records),
                    status=exc.status_code,
                    delay=round(delay, 3),
                    error=str(exc),
                )
                self._sleep(delay)
                continue
            self.logger.info(
                "batch_submitted",
                size=len(records),
                accepted=len(result.accepted),
                rejected=len(result.rejected),
                attempts=attempt,
            )
            return result

    @abstractmethod
    def _submit(self, records: list[CanonicalRecord]) -> BatchResult:
        """Single submission attempt; raise :class:`SinkError` on failure."""

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        return None


__all__ = ["BatchResult", "IngestionSink"]
