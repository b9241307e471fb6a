"""Per-source politeness spacing."""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Dict


class RateLimiter:
    """Hand out request slots so consecutive requests to one source are spaced.

    Each call to :meth:`reserve` books the next free slot under a lock and
    returns how long the caller has to wait for it. Waiting happens outside
    the lock, so concurrent callers for the same source queue up in order.
    """

    def __init__(
        self,
        default_delay: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.default_delay = default_delay
        self._clock = clock
        self._sleep = sleep
        self._delays: Dict[str, float] = {}
        self._next_slot: Dict[str, float] = {}
        self._lock = Lock()

    def configure(self, source_name: str, delay: float | None) -> None:
        with self._lock:
            self._delays[source_name] = self.default_delay if delay is None else delay

    def delay_for(self, source_name: str) -> float:
        return self._delays.get(source_name, self.default_delay)

    def reserve(self, source_name: str, not_before: float = 0.0) -> float:
        """Book a slot and return the wait in seconds (never negative)."""

        with self._lock:
            now = self._clock()
            slot = max(now, not_before, self._next_slot.get(source_name, now))
            self._next_slot[source_name] = slot + self.delay_for(source_name)
        return max(0.0, slot - now)

    def wait(self, source_name: str, not_before: float = 0.0) -> float:
        delay = self.reserve(source_name, not_before)
        if delay > 0:
            self._sleep(delay)
        return delay


__all__ = ["RateLimiter"]
