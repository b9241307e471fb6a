"""Crawl orchestrator wiring together fetching, parsing, normalizing, dedup and ingestion."""

from __future__ import annotations

import sqlite3
import uuid
from collections import Counter, deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Event, Lock
from typing import Callable, Iterable, Sequence

import structlog
from pydantic import ValidationError

from .adapters import AdapterRegistry, SiteAdapter, default_registry
from .config import ConfigRepository, RunOptions
from .engine import DedupIndex, Fetcher, Normalizer, ThreadPoolManager
from .errors import FetchError, OrchestratorFault, RecordRejected, SinkError
from .infra import RunHistory
from .logging_conf import log_context
from .models import CanonicalRecord, CandidateRecord, RunStatus, RunSummary, SourceOutcome
from .sink import IngestionSink

LoggerFactory = Callable[[str], structlog.BoundLogger]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_logger_factory(source_name: str) -> structlog.BoundLogger:
    return structlog.get_logger("seedcrawl.orchestrator").bind(source=source_name)


class CrawlRun:
    """One orchestrated crawl: ``IDLE -> RUNNING -> COMPLETED | FAILED | CANCELLED``."""

    def __init__(
        self,
        orchestrator: "CrawlOrchestrator",
        sources: Sequence[str],
        options: RunOptions,
    ) -> None:
        self.run_id = uuid.uuid4().hex
        self.sources = list(sources)
        self.options = options
        self._orchestrator = orchestrator
        self._state = RunStatus.IDLE
        self._cancel = Event()
        self._done = Event()
        self._lock = Lock()
        self._summary: RunSummary | None = None

    @property
    def state(self) -> RunStatus:
        return self._state

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop dispatching new fetches; work already gathered is still submitted."""

        self._cancel.set()

    def execute(self) -> RunSummary:
        """Run to completion; a second caller waits for the first one's summary."""

        with self._lock:
            already_started = self._state is not RunStatus.IDLE
            if not already_started:
                self._state = RunStatus.RUNNING
        if already_started:
            self._done.wait()
            return self._summary
        try:
            return self._orchestrator._execute(self)
        finally:
            if self._summary is None:
                self._state = RunStatus.FAILED
            self._done.set()

    def _finish(self, summary: RunSummary) -> None:
        self._summary = summary
        self._state = summary.status

    def result(self, timeout: float | None = None) -> RunSummary | None:
        self._done.wait(timeout)
        return self._summary


class CrawlOrchestrator:
    """Run crawls over the configured sources.

    Sources fan out on the thread pool; within a source, tasks are fetched
    one at a time in crawl order and follow-up tasks are fetched right after
    the page that produced them. Gathered candidates are normalized, then
    claimed in the dedup index chunk by chunk and handed to the sink.
    """

    def __init__(
        self,
        config_repository: ConfigRepository,
        fetcher: Fetcher,
        dedup: DedupIndex,
        sink: IngestionSink,
        registry: AdapterRegistry | None = None,
        thread_pool: ThreadPoolManager | None = None,
        history: RunHistory | None = None,
        normalizer: Normalizer | None = None,
        logger_factory: LoggerFactory | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config = config_repository.load_global_config()
        self.fetcher = fetcher
        self.dedup = dedup
        self.sink = sink
        self.registry = registry or default_registry()
        self.thread_pool = thread_pool or ThreadPoolManager(self.global_config.max_concurrent_sources)
        self.history = history
        self.normalizer = normalizer or Normalizer()
        self.logger_factory = logger_factory or _default_logger_factory
        self.logger = structlog.get_logger("seedcrawl.orchestrator").bind(component="orchestrator")

    # ------------------------------------------------------------------
    def start(self, sources: Iterable[str] | None = None, options: RunOptions | None = None) -> CrawlRun:
        names = list(sources) if sources else list(self.global_config.default_sources)
        return CrawlRun(self, names, options or self.global_config.default_options)

    def run(self, sources: Iterable[str] | None = None, options: RunOptions | None = None) -> RunSummary:
        return self.start(sources, options).execute()

    # ------------------------------------------------------------------
    def _execute(self, run: CrawlRun) -> RunSummary:
        started_at = _utcnow()
        log = self.logger.bind(run_id=run.run_id)
        log.info("run_started", sources=run.sources, max_pages=run.options.max_pages, query=run.options.query)
        outcomes: list[SourceOutcome] = []
        fault: str | None = None
        try:
            self.dedup.ping()
            futures: list[tuple[str, Future[SourceOutcome]]] = [
                (name, self.thread_pool.submit(self._run_source_guarded, run, name))
                for name in run.sources
            ]
            outcomes = [future.result() for _, future in futures]
        except OrchestratorFault as exc:
            fault = str(exc)
            log.error("run_fault", error=fault)
        except Exception as exc:  # noqa: BLE001
            fault = f"{type(exc).__name__}: {exc}"
            log.exception("run_crashed", error=fault)

        summary = RunSummary(
            run_id=run.run_id,
            status=self._final_status(run, outcomes, fault),
            started_at=started_at,
            finished_at=_utcnow(),
            per_source=tuple(outcomes),
            fault=fault,
        )
        run._finish(summary)
        log.info(
            "run_finished",
            status=summary.status.value,
            candidates=summary.total_candidates,
            accepted=summary.total_accepted,
            duplicates=summary.total_duplicates,
            duration_ms=summary.total_duration_ms,
        )
        if self.history is not None:
            try:
                self.history.record(summary)
            except sqlite3.Error as exc:
                log.error("run_history_write_failed", error=str(exc))
        return summary

    @staticmethod
    def _final_status(run: CrawlRun, outcomes: list[SourceOutcome], fault: str | None) -> RunStatus:
        if fault is not None:
            return RunStatus.FAILED
        submitters = [outcome for outcome in outcomes if outcome.attempted_submission]
        if submitters and all(outcome.batches_failed > 0 for outcome in submitters):
            return RunStatus.FAILED
        if run.cancel_requested:
            return RunStatus.CANCELLED
        return RunStatus.COMPLETED

    def _run_source_guarded(self, run: CrawlRun, source_name: str) -> SourceOutcome:
        if run.cancel_requested:
            return SourceOutcome(source_name, success=False, cancelled=True, error="run cancelled")
        with log_context(run_id=run.run_id, source=source_name):
            try:
                return self._run_source(run, source_name)
            except Exception as exc:  # noqa: BLE001
                self.logger_factory(source_name).exception("source_crashed", error=str(exc))
                return SourceOutcome(source_name, success=False, error=f"{type(exc).__name__}: {exc}")

    def _run_source(self, run: CrawlRun, source_name: str) -> SourceOutcome:
        log = self.logger_factory(source_name).bind(run_id=run.run_id)
        try:
            source = self.config_repository.load_source(source_name)
            adapter = self.registry.create(source)
        except (FileNotFoundError, KeyError, ValueError, ValidationError) as exc:
            log.error("source_unavailable", error=str(exc))
            return SourceOutcome(source_name, success=False, error=f"unknown source: {exc}")
        if not source.enabled:
            log.warning("source_disabled")
            return SourceOutcome(source_name, success=False, error="source disabled")

        self.fetcher.register_source(source)
        crawl = self._crawl(run, adapter, log)
        if crawl.fatal_error is not None:
            return SourceOutcome(
                source_name,
                success=False,
                pages_fetched=crawl.pages_fetched,
                pages_failed=crawl.pages_failed,
                cancelled=crawl.cancelled,
                error=crawl.fatal_error,
            )

        records, reasons = self._normalize(crawl.candidates, log)
        ingest = self._ingest(records, log)
        outcome = SourceOutcome(
            source_name,
            success=ingest.error is None,
            candidate_count=len(crawl.candidates),
            accepted_count=ingest.accepted,
            duplicate_count=ingest.duplicates,
            rejected_count=sum(reasons.values()),
            rejection_reasons=dict(reasons),
            sink_rejected_count=ingest.sink_rejected,
            pages_fetched=crawl.pages_fetched,
            pages_failed=crawl.pages_failed,
            anomalies=crawl.anomalies,
            skipped_rows=crawl.skipped_rows,
            batches_submitted=ingest.batches_submitted,
            batches_failed=ingest.batches_failed,
            sink_failed_count=ingest.failed_records,
            cancelled=crawl.cancelled,
            error=ingest.error,
        )
        log.info(
            "source_finished",
            success=outcome.success,
            candidates=outcome.candidate_count,
            accepted=outcome.accepted_count,
            duplicates=outcome.duplicate_count,
            rejected=outcome.rejected_count,
            sink_failed=outcome.sink_failed_count,
            pages=outcome.pages_fetched,
        )
        return outcome

    # ------------------------------------------------------------------
    def _crawl(self, run: CrawlRun, adapter: SiteAdapter, log: structlog.BoundLogger) -> "_CrawlState":
        state = _CrawlState()
        targets = adapter.list_targets(run.options.query, run.options.max_pages)
        first_listing = targets[0] if targets else None
        queue = deque(targets)
        stopped_groups: set[str] = set()
        while queue:
            if run.cancel_requested:
                state.cancelled = True
                log.info("source_cancelled", pending=len(queue))
                break
            task = queue.popleft()
            if task.kind == "listing" and task.group in stopped_groups:
                continue
            try:
                page = self.fetcher.fetch(task)
            except FetchError as exc:
                state.pages_failed += 1
                log.warning("page_failed", url=task.url, status=exc.status_code, attempts=exc.attempts, error=str(exc))
                if task is first_listing:
                    state.fatal_error = f"first listing page failed: {exc}"
                    return state
                continue
            state.pages_fetched += 1
            parsed = adapter.parse(page)
            state.candidates.extend(parsed.candidates)
            state.anomalies += len(parsed.anomalies)
            state.skipped_rows += parsed.skipped_rows
            if parsed.last_page:
                stopped_groups.add(task.group)
            queue.extendleft(reversed(parsed.follow_ups))
        return state

    def _normalize(
        self, candidates: list[CandidateRecord], log: structlog.BoundLogger
    ) -> tuple[list[CanonicalRecord], Counter]:
        records: list[CanonicalRecord] = []
        reasons: Counter = Counter()
        for candidate in candidates:
            try:
                records.append(self.normalizer.normalize(candidate))
            except RecordRejected as exc:
                reasons[exc.reason.value] += 1
                log.info("record_rejected", reason=exc.reason.value, title=candidate.title, detail=exc.detail)
        return records, reasons

    def _ingest(self, records: list[CanonicalRecord], log: structlog.BoundLogger) -> "_IngestState":
        state = _IngestState()
        size = self.sink.max_batch_size
        for start in range(0, len(records), size):
            chunk = records[start : start + size]
            fresh, duplicates = self.dedup.claim(chunk)
            state.duplicates += duplicates
            if not fresh:
                continue
            try:
                result = self.sink.submit_batch(fresh)
            except SinkError as exc:
                self.dedup.release(fresh)
                state.batches_failed += 1
                state.failed_records += len(fresh)
                if state.error is None:
                    state.error = f"sink failed after {exc.attempts} attempt(s): {exc}"
                log.error(
                    "batch_failed",
                    size=len(fresh),
                    attempts=exc.attempts,
                    status=exc.status_code,
                    retryable=exc.retryable,
                    error=str(exc),
                    payload={"torrents": [record.to_ingest_payload() for record in fresh]},
                )
                continue
            state.batches_submitted += 1
            state.accepted += len(result.accepted)
            if result.rejected:
                self.dedup.release(record for record, _ in result.rejected)
                state.sink_rejected += len(result.rejected)
                for record, reason in result.rejected:
                    log.warning("record_rejected_downstream", title=record.title, reason=reason)
        return state


@dataclass(slots=True)
class _CrawlState:
    candidates: list[CandidateRecord] = field(default_factory=list)
    pages_fetched: int = 0
    pages_failed: int = 0
    anomalies: int = 0
    skipped_rows: int = 0
    cancelled: bool = False
    fatal_error: str | None = None


@dataclass(slots=True)
class _IngestState:
    accepted: int = 0
    duplicates: int = 0
    sink_rejected: int = 0
    batches_submitted: int = 0
    batches_failed: int = 0
    failed_records: int = 0
    error: str | None = None


__all__ = ["CrawlOrchestrator", "CrawlRun"]
