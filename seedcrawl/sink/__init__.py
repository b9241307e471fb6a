"""Ingestion sinks: where canonical records end up."""

from __future__ import annotations

from pathlib import Path

from ..config import SinkConfig, resolve_path
from ..infra.storage import SQLiteManager
from .base import BatchResult, IngestionSink
from .http import HttpIngestionSink
from .schema import IngestBatch, IngestTorrent, MAX_BATCH_SIZE
from .sqlite_store import SQLiteStoreSink


def build_sink(
    config: SinkConfig,
    base_dir: Path | None = None,
    manager: SQLiteManager | None = None,
) -> IngestionSink:
    policy = config.backoff.to_policy()
    if config.kind == "http":
        return HttpIngestionSink(
            config.endpoint or "",
            config.api_key,
            timeout=config.submit_timeout,
            backoff=policy,
            batch_size=config.batch_size,
        )
    path = resolve_path(config.store_path, base_dir) if base_dir else config.store_path
    return SQLiteStoreSink(path, manager, backoff=policy, batch_size=config.batch_size)


__all__ = [
    "BatchResult",
    "HttpIngestionSink",
    "IngestBatch",
    "IngestTorrent",
    "IngestionSink",
    "MAX_BATCH_SIZE",
    "SQLiteStoreSink",
    "build_sink",
]
