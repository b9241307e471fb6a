"""Fingerprint deduplication with pluggable stores."""

from __future__ import annotations

import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Callable, Iterable, Sequence

import structlog

from ..config import DedupConfig
from ..errors import OrchestratorFault
from ..infra.storage import SQLiteManager
from ..models import CanonicalRecord, DedupEntry


def _is_live(entry: DedupEntry | None, now: float, window: float | None) -> bool:
    """A live entry makes a fingerprint count as a duplicate."""

    if entry is None:
        return False
    if entry.expires_at is not None and entry.expires_at <= now:
        return False
    if window is not None and now - entry.last_seen_at >= window:
        return False
    return True


class DedupStore(ABC):
    """Persistence contract for fingerprint entries."""

    durable: bool = True
    backend: str = "unknown"

    @abstractmethod
    def get(self, fingerprint: str) -> DedupEntry | None: ...

    @abstractmethod
    def put(self, entry: DedupEntry) -> None: ...

    @abstractmethod
    def delete(self, fingerprints: Iterable[str]) -> int: ...

    @abstractmethod
    def check_and_mark(
        self,
        items: Sequence[tuple[str, str | None]],
        *,
        now: float,
        window: float | None,
        ttl: float | None,
    ) -> list[bool]:
        """Atomically test and record ``(fingerprint, source)`` pairs.

        Returns one flag per item, ``True`` when the fingerprint was new and
        has now been recorded.
        """

    @abstractmethod
    def stats(self) -> dict: ...

    @abstractmethod
    def reset(self) -> None: ...

    def ping(self) -> None:
        return None

    def close(self) -> None:
        return None


class MemoryDedupStore(DedupStore):
    """Process-local store; forgets everything on exit."""

    durable = False
    backend = "memory"

    def __init__(self) -> None:
        self._entries: dict[str, DedupEntry] = {}
        self._lock = Lock()

    def get(self, fingerprint: str) -> DedupEntry | None:
        with self._lock:
            return self._entries.get(fingerprint)

    def put(self, entry: DedupEntry) -> None:
        with self._lock:
            self._entries[entry.fingerprint] = entry

    def delete(self, fingerprints: Iterable[str]) -> int:
        removed = 0
        with self._lock:
            for fingerprint in fingerprints:
                if self._entries.pop(fingerprint, None) is not None:
                    removed += 1
        return removed

    def check_and_mark(self, items, *, now, window, ttl):
        flags: list[bool] = []
        with self._lock:
            for fingerprint, source_name in items:
                entry = self._entries.get(fingerprint)
                if _is_live(entry, now, window):
                    entry.hits += 1
                    flags.append(False)
                    continue
                self._entries[fingerprint] = DedupEntry(
                    fingerprint=fingerprint,
                    first_seen_at=entry.first_seen_at if entry else now,
                    last_seen_at=now,
                    expires_at=now + ttl if ttl else None,
                    source_name=source_name,
                    hits=(entry.hits + 1) if entry else 1,
                )
                flags.append(True)
        return flags

    def stats(self) -> dict:
        now = time.time()
        with self._lock:
            entries = list(self._entries.values())
        return {
            "backend": self.backend,
            "durable": self.durable,
            "entries": len(entries),
            "active": sum(1 for entry in entries if _is_live(entry, now, None)),
            "hits": sum(entry.hits for entry in entries),
        }

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


class SQLiteDedupStore(DedupStore):
    """Durable store backed by a single SQLite file."""

    durable = True
    backend = "sqlite"

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        self._conn = self.manager.connect(db_path, schema="dedup")

    def get(self, fingerprint: str) -> DedupEntry | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM dedup_entries WHERE fingerprint = ?", (fingerprint,)
            ).fetchone()
        return self._to_entry(row)

    def put(self, entry: DedupEntry) -> None:
        with self._lock:
            self._upsert(entry)

    def delete(self, fingerprints: Iterable[str]) -> int:
        keys = [(fingerprint,) for fingerprint in fingerprints]
        if not keys:
            return 0
        with self._lock:
            before = self._conn.total_changes
            self._conn.executemany("DELETE FROM dedup_entries WHERE fingerprint = ?", keys)
            return self._conn.total_changes - before

    def check_and_mark(self, items, *, now, window, ttl):
        flags: list[bool] = []
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                for fingerprint, source_name in items:
                    row = self._conn.execute(
                        "SELECT * FROM dedup_entries WHERE fingerprint = ?", (fingerprint,)
                    ).fetchone()
                    entry = self._to_entry(row)
                    if _is_live(entry, now, window):
                        self._conn.execute(
                            "UPDATE dedup_entries SET hits = hits + 1 WHERE fingerprint = ?",
                            (fingerprint,),
                        )
                        flags.append(False)
                        continue
                    self._upsert(
                        DedupEntry(
                            fingerprint=fingerprint,
                            first_seen_at=entry.first_seen_at if entry else now,
                            last_seen_at=now,
                            expires_at=now + ttl if ttl else None,
                            source_name=source_name,
                            hits=(entry.hits + 1) if entry else 1,
                        )
                    )
                    flags.append(True)
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return flags

    def stats(self) -> dict:
        now = time.time()
        with self._lock:
            row = self._conn.execute(
                """
                SELECT COUNT(*) AS entries,
                       COALESCE(SUM(hits), 0) AS hits,
                       COALESCE(SUM(CASE WHEN expires_at IS NULL OR expires_at > ? THEN 1 ELSE 0 END), 0) AS active
                FROM dedup_entries
                """,
                (now,),
            ).fetchone()
        return {
            "backend": self.backend,
            "durable": self.durable,
            "entries": row["entries"],
            "active": row["active"],
            "hits": row["hits"],
            "path": str(self.db_path),
        }

    def reset(self) -> None:
        with self._lock:
            self.manager.reset(self.db_path)
            self._conn = self.manager.connect(self.db_path, schema="dedup")

    def ping(self) -> None:
        with self._lock:
            self._conn.execute("SELECT 1 FROM dedup_entries LIMIT 1").fetchall()

    # ------------------------------------------------------------------
    def _upsert(self, entry: DedupEntry) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO dedup_entries"
            "(fingerprint, first_seen_at, last_seen_at, expires_at, source_name, hits) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                entry.fingerprint,
                entry.first_seen_at,
                entry.last_seen_at,
                entry.expires_at,
                entry.source_name,
                entry.hits,
            ),
        )

    @staticmethod
    def _to_entry(row: sqlite3.Row | None) -> DedupEntry | None:
        if row is None:
            return None
        return DedupEntry(
            fingerprint=row["fingerprint"],
            first_seen_at=row["first_seen_at"],
            last_seen_at=row["last_seen_at"],
            expires_at=row["expires_at"],
            source_name=row["source_name"],
            hits=row["hits"],
        )


class DedupIndex:
    """Decide which canonical records are new, keyed by their fingerprint.

    ``reingest_window`` of ``None`` means a fingerprint is never re-ingested
    once seen (until its TTL, if any, expires). The window is measured from
    the last time the fingerprint was admitted as new, not from its last
    duplicate sighting.
    """

    def __init__(
        self,
        store: DedupStore,
        *,
        reingest_window: float | None = None,
        entry_ttl: float | None = None,
        clock: Callable[[], float] = time.time,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.reingest_window = reingest_window
        self.entry_ttl = entry_ttl
        self._clock = clock
        self.logger = logger or structlog.get_logger("seedcrawl.dedup")
        if not store.durable:
            self.logger.warning("dedup_store_not_durable", backend=store.backend)

    @property
    def durable(self) -> bool:
        return self.store.durable

    def filter_new(
        self, records: Sequence[CanonicalRecord]
    ) -> tuple[list[CanonicalRecord], int]:
        """Split ``records`` into unseen ones and a duplicate count, read-only."""

        now = self._clock()
        seen_in_chunk: set[str] = set()
        fresh: list[CanonicalRecord] = []
        duplicates = 0
        for record in records:
            fingerprint = record.fingerprint
            if fingerprint in seen_in_chunk or _is_live(
                self.store.get(fingerprint), now, self.reingest_window
            ):
                duplicates += 1
                continue
            seen_in_chunk.add(fingerprint)
            fresh.append(record)
        return fresh, duplicates

    def mark_seen(self, records: Sequence[CanonicalRecord]) -> None:
        now = self._clock()
        for record in records:
            existing = self.store.get(record.fingerprint)
            self.store.put(
                DedupEntry(
                    fingerprint=record.fingerprint,
                    first_seen_at=existing.first_seen_at if existing else now,
                    last_seen_at=now,
                    expires_at=now + self.entry_ttl if self.entry_ttl else None,
                    source_name=record.source_name,
                    hits=(existing.hits + 1) if existing else 1,
                )
            )

    def claim(self, records: Sequence[CanonicalRecord]) -> tuple[list[CanonicalRecord], int]:
        """Filter and mark in one atomic step.

        Two concurrent claims of the same fingerprint never both succeed.
        """

        if not records:
            return [], 0
        flags = self.store.check_and_mark(
            [(record.fingerprint, record.source_name) for record in records],
            now=self._clock(),
            window=self.reingest_window,
            ttl=self.entry_ttl,
        )
        fresh = [record for record, is_new in zip(records, flags) if is_new]
        return fresh, len(records) - len(fresh)

    def release(self, records: Iterable[CanonicalRecord]) -> int:
        """Forget fingerprints whose ingestion did not go through."""

        removed = self.store.delete(record.fingerprint for record in records)
        if removed:
            self.logger.info("dedup_released", count=removed)
        return removed

    def stats(self) -> dict:
        return self.store.stats()

    def reset(self) -> None:
        self.store.reset()
        self.logger.info("dedup_reset", backend=self.store.backend)

    def ping(self) -> None:
        try:
            self.store.ping()
        except (sqlite3.Error, OSError) as exc:
            raise OrchestratorFault(f"dedup store unreachable: {exc}") from exc


def build_dedup_index(
    config: DedupConfig,
    manager: SQLiteManager | None = None,
    base_dir: Path | None = None,
    clock: Callable[[], float] = time.time,
) -> DedupIndex:
    if config.backend == "memory":
        store: DedupStore = MemoryDedupStore()
    else:
        path = config.store_path
        if base_dir is not None and not path.is_absolute():
            path = (base_dir / path).resolve()
        store = SQLiteDedupStore(manager or SQLiteManager(), path)
    return DedupIndex(
        store,
        reingest_window=config.reingest_window_seconds,
        entry_ttl=config.entry_ttl_seconds,
        clock=clock,
    )


__all__ = [
    "DedupIndex",
    "DedupStore",
    "MemoryDedupStore",
    "SQLiteDedupStore",
    "build_dedup_index",
]
