"""Operator-facing entry points: manual run, scheduled run, status."""

from __future__ import annotations

from typing import Any, Mapping

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .adapters import AdapterRegistry, default_registry
from .config import ConfigRepository, RunOptions, resolve_path
from .engine import DedupIndex, Fetcher, ThreadPoolManager, build_dedup_index
from .errors import OrchestratorFault
from .infra import RunHistory, SQLiteManager
from .logging_conf import source_logger
from .models import RunSummary
from .orchestrator import CrawlOrchestrator
from .scheduler import APSchedulerAdapter
from .sink import IngestionSink, build_sink


class ManualRunRequest(BaseModel):
    """Body of a manual trigger: ``{sources: [...], options: {maxPages, query}}``."""

    model_config = ConfigDict(extra="forbid")

    sources: list[str] = Field(default_factory=list)
    options: RunOptions = Field(default_factory=RunOptions)

    @field_validator("sources")
    @classmethod
    def _non_blank(cls, value: list[str]) -> list[str]:
        cleaned = [name.strip() for name in value]
        if any(not name for name in cleaned):
            raise ValueError("source names cannot be blank")
        return cleaned


class CrawlService:
    """Glue between the trigger surfaces and the orchestrator."""

    def __init__(
        self,
        repository: ConfigRepository,
        orchestrator: CrawlOrchestrator,
        dedup: DedupIndex,
        history: RunHistory,
        scheduler: APSchedulerAdapter | None = None,
    ) -> None:
        self.repository = repository
        self.orchestrator = orchestrator
        self.dedup = dedup
        self.history = history
        self.scheduler = scheduler or APSchedulerAdapter()
        self.logger = structlog.get_logger("seedcrawl.service").bind(component="service")

    @classmethod
    def from_repository(
        cls,
        repository: ConfigRepository | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        sink: IngestionSink | None = None,
        registry: AdapterRegistry | None = None,
        per_source_logs: bool = True,
    ) -> "CrawlService":
        repository = repository or ConfigRepository()
        global_config = repository.load_global_config()
        root = repository.locator.project_root
        storage = SQLiteManager()
        dedup = build_dedup_index(global_config.dedup, storage, root)
        history = RunHistory(storage, resolve_path(global_config.run_history_path, root))
        orchestrator = CrawlOrchestrator(
            config_repository=repository,
            fetcher=Fetcher(global_config, transport=transport),
            dedup=dedup,
            sink=sink or build_sink(global_config.sink, root, storage),
            registry=registry or default_registry(),
            thread_pool=ThreadPoolManager(global_config.max_concurrent_sources),
            history=history,
            logger_factory=source_logger if per_source_logs else None,
        )
        return cls(repository, orchestrator, dedup, history)

    # ------------------------------------------------------------------
    def manual_run(self, payload: ManualRunRequest | Mapping[str, Any]) -> RunSummary:
        """Validate ``payload`` and run it synchronously.

        Raises :class:`pydantic.ValidationError` for malformed input; every
        other outcome is reported through the returned summary.
        """

        request = payload if isinstance(payload, ManualRunRequest) else ManualRunRequest.model_validate(payload)
        self.logger.info("manual_run_requested", sources=request.sources, options=request.options.model_dump())
        return self.orchestrator.run(request.sources or None, request.options)

    def scheduled_run(self) -> RunSummary:
        config = self.repository.load_global_config()
        self.logger.info("scheduled_run_triggered", sources=config.default_sources)
        return self.orchestrator.run(config.default_sources, config.default_options)

    def start_schedule(self) -> None:
        config = self.repository.load_global_config()
        self.scheduler.schedule(config.schedule, self.scheduled_run)
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.shutdown()

    # ------------------------------------------------------------------
    def health(self) -> dict[str, Any]:
        try:
            self.dedup.ping()
            dedup_state = "ok"
        except OrchestratorFault as exc:
            dedup_state = f"unreachable: {exc}"
        return {
            "dedup_store": dedup_state,
            "dedup_durable": self.dedup.durable,
            "sink": "ok" if self.orchestrator.sink.ping() else "unreachable",
            "last_run_at": _isoformat(self.history.last_run_at()),
        }

    def status(self, limit: int = 5) -> dict[str, Any]:
        return {
            "runs": self.history.recent_runs(limit),
            "sources": self.history.source_stats(),
            "dedup": self.dedup.stats(),
            "health": self.health(),
            "jobs": [
                {key: str(value) for key, value in job.items()} for job in self.scheduler.list_jobs()
            ],
        }

    def close(self) -> None:
        self.stop()
        self.orchestrator.thread_pool.shutdown()
        self.orchestrator.fetcher.close()
        self.orchestrator.sink.close()


def _isoformat(value) -> str | None:
    return value.isoformat() if value is not None else None


__all__ = ["CrawlService", "ManualRunRequest"]
