"""Worker pools used to crawl several sources side by side."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, Dict, TypeVar

T = TypeVar("T")


class ThreadPoolManager:
    """Lazily create named executors and tear them down together.

    The orchestrator runs one source per worker of the ``sources`` pool, so
    its size is the number of sources crawled concurrently.
    """

    def __init__(self, default_workers: int = 2) -> None:
        self.default_workers = max(1, default_workers)
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, name: str = "sources", max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            executor = self._executors.get(name)
            if executor is None:
                executor = ThreadPoolExecutor(
                    max_workers=max_workers or self.default_workers,
                    thread_name_prefix=f"seedcrawl-{name}",
                )
                self._executors[name] = executor
            return executor

    def submit(self, fn: Callable[..., T], *args, pool: str = "sources", **kwargs) -> Future[T]:
        return self.get(pool).submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=wait, cancel_futures=not wait)


__all__ = ["ThreadPoolManager"]
