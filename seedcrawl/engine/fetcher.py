"""HTTP fetching with politeness spacing and bounded retries."""

from __future__ import annotations

import random
import time
from threading import BoundedSemaphore, Lock
from typing import Callable, Dict

import httpx
import structlog

from ..config import GlobalConfig, SourceConfig
from ..errors import FetchError
from ..models import FetchTask, RawPage
from .backoff import BackoffPolicy
from .rate_limit import RateLimiter

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.8,*/*;q=0.7",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "DNT": "1",
}

_CONTENT_MARKERS = {
    "html": ("text/html", "application/xhtml"),
    "json": ("json",),
}


class Fetcher:
    """Retrieve pages for fetch tasks.

    A global semaphore caps requests in flight across all sources; the rate
    limiter spaces requests to the same source. Transient failures (network
    errors, timeouts, 5xx, 429) are retried according to the backoff policy,
    everything else surfaces immediately as a permanent :class:`FetchError`.
    """

    def __init__(
        self,
        global_config: GlobalConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        rate_limiter: RateLimiter | None = None,
        backoff: BackoffPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        settings = global_config.fetcher
        self.settings = settings
        self.backoff = backoff or settings.backoff.to_policy()
        self.logger = logger or structlog.get_logger("seedcrawl.fetcher")
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._limiter = rate_limiter or RateLimiter(settings.min_delay, clock=clock, sleep=sleep)
        self._in_flight = BoundedSemaphore(settings.max_in_flight)
        self._source_headers: Dict[str, dict[str, str]] = {}
        self._lock = Lock()
        headers = dict(DEFAULT_HEADERS)
        headers["User-Agent"] = settings.user_agent
        headers.update(settings.headers)
        self._client = httpx.Client(
            follow_redirects=True,
            timeout=settings.timeout,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def register_source(self, source: SourceConfig) -> None:
        """Apply per-source delay and headers to subsequent fetches."""

        self._limiter.configure(source.source_name, source.min_delay)
        with self._lock:
            self._source_headers[source.source_name] = dict(source.headers)

    def fetch(self, task: FetchTask) -> RawPage:
        log = self.logger.bind(source=task.source_name, url=task.url)
        while True:
            self._wait_until(task.next_eligible_at)
            task.attempt += 1
            try:
                page = self._attempt(task)
            except FetchError as exc:
                exc.attempts = task.attempt
                if not exc.retryable or not self.backoff.should_retry(task.attempt):
                    log.warning(
                        "fetch_failed",
                        attempt=task.attempt,
                        status=exc.status_code,
                        retryable=exc.retryable,
                        error=str(exc),
                    )
                    raise
                delay = self.backoff.delay_for(task.attempt, self._rng)
                if exc.retry_after is not None:
                    delay = max(delay, exc.retry_after)
                task.next_eligible_at = self._clock() + delay
                log.info(
                    "fetch_retry_scheduled",
                    attempt=task.attempt,
                    status=exc.status_code,
                    delay=round(delay, 3),
                    error=str(exc),
                )
                continue
            log.debug("fetch_ok", status=page.status_code, elapsed_ms=page.elapsed_ms)
            return page

    # ------------------------------------------------------------------
    def _wait_until(self, moment: float) -> None:
        remaining = moment - self._clock()
        if remaining > 0:
            self._sleep(remaining)

    def _attempt(self, task: FetchTask) -> RawPage:
        # The in-flight slot covers the request only, never the politeness wait.
        self._limiter.wait(task.source_name)
        with self._lock:
            headers = dict(self._source_headers.get(task.source_name, {}))
        with self._in_flight:
            started = self._clock()
            try:
                response = self._client.get(task.url, headers=headers)
            except httpx.TransportError as exc:
                raise FetchError(
                    f"{type(exc).__name__}: {exc}", url=task.url, retryable=True
                ) from exc
            elapsed_ms = (self._clock() - started) * 1000
        self._check_status(task, response)
        content_type = response.headers.get("content-type", "")
        self._check_content_type(task, content_type)
        return RawPage(
            task=task,
            url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            content_type=content_type,
            elapsed_ms=elapsed_ms,
        )

    @staticmethod
    def _check_status(task: FetchTask, response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        retryable = status == 429 or status >= 500
        error = FetchError(
            f"Unexpected status {status}",
            url=task.url,
            retryable=retryable,
            status_code=status,
        )
        if retryable:
            error.retry_after = _parse_retry_after(response.headers.get("retry-after"))
        raise error

    @staticmethod
    def _check_content_type(task: FetchTask, content_type: str) -> None:
        markers = _CONTENT_MARKERS.get(task.expect)
        if not markers:
            return
        lowered = content_type.lower()
        if not any(marker in lowered for marker in markers):
            raise FetchError(
                f"Expected {task.expect} content, got {content_type or 'none'}",
                url=task.url,
                retryable=False,
            )


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(0.0, seconds)


__all__ = ["DEFAULT_HEADERS", "Fetcher"]
