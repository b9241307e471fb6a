"""Local downstream store: upsert torrents into SQLite tables."""

from __future__ import annotations

import re
import sqlite3
import uuid
from pathlib import Path
from threading import Lock
from typing import Any

from pydantic import ValidationError

from ..errors import RejectionReason, SinkError
from ..infra.storage import SQLiteManager
from ..models import CanonicalRecord
from .base import BatchResult, IngestionSink
from .schema import IngestTorrent, validation_reason


def _slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or uuid.uuid4().hex


class SQLiteStoreSink(IngestionSink):
    """Apply each record as its own savepoint inside one batch transaction.

    A record that fails validation or hits an integrity error is rejected
    alone; a locked or otherwise unavailable database aborts the whole
    batch as a transient :class:`SinkError`.
    """

    kind = "sqlite"

    def __init__(self, db_path: Path, manager: SQLiteManager | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.db_path = db_path
        self.manager = manager or SQLiteManager()
        self._lock = Lock()
        self._conn = self.manager.connect(db_path, schema="store")

    def _submit(self, records: list[CanonicalRecord]) -> BatchResult:
        result = BatchResult()
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                raise SinkError(f"store unavailable: {exc}", retryable=True) from exc
            try:
                for index, record in enumerate(records):
                    try:
                        item = IngestTorrent.model_validate(record.to_ingest_payload())
                    except ValidationError as exc:
                        result.rejected.append((record, validation_reason(exc)))
                        continue
                    savepoint = f"record_{index}"
                    self._conn.execute(f"SAVEPOINT {savepoint}")
                    try:
                        self._apply(item, record.source_name)
                    except sqlite3.IntegrityError as exc:
                        self._conn.execute(f"ROLLBACK TO {savepoint}")
                        self._conn.execute(f"RELEASE {savepoint}")
                        result.rejected.append((record, f"{RejectionReason.DOWNSTREAM_ERROR.value}: {exc}"))
                        continue
                    self._conn.execute(f"RELEASE {savepoint}")
                    result.accepted.append(record)
                self._conn.execute("COMMIT")
            except sqlite3.OperationalError as exc:
                self._conn.execute("ROLLBACK")
                raise SinkError(f"store write failed: {exc}", retryable=True) from exc
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise
        return result

    # ------------------------------------------------------------------
    def _apply(self, item: IngestTorrent, source_name: str | None) -> str:
        category_id = self._category_id(item.category_name) if item.category_name else None
        existing = None
        if item.info_hash:
            existing = self._conn.execute(
                "SELECT id FROM torrent WHERE info_hash = ?", (item.info_hash,)
            ).fetchone()
        elif item.magnet_link:
            existing = self._conn.execute(
                "SELECT id FROM torrent WHERE magnet_link = ?", (item.magnet_link,)
            ).fetchone()
        if existing is not None:
            self._conn.execute(
                "UPDATE torrent SET seeders = ?, leechers = ?, size = COALESCE(?, size), "
                "updated_at = datetime('now') WHERE id = ?",
                (item.seeders, item.leechers, item.size, existing["id"]),
            )
            return existing["id"]

        torrent_id = str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO torrent(
                id, title, description, magnet_link, info_hash, size, seeders,
                leechers, category_id, poster_url, source_name
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                torrent_id,
                item.title,
                item.description,
                item.magnet_link or "",
                item.info_hash,
                item.size,
                item.seeders,
                item.leechers,
                category_id,
                item.poster_url,
                source_name,
            ),
        )
        self._conn.executemany(
            "INSERT INTO torrent_file(torrent_id, name, size, is_video) VALUES (?, ?, ?, ?)",
            [(torrent_id, entry.name, entry.size, int(entry.is_video)) for entry in item.files],
        )
        self._conn.executemany(
            "INSERT INTO torrent_tracker(torrent_id, url, is_active) VALUES (?, ?, ?)",
            [(torrent_id, tracker.url, int(tracker.is_active)) for tracker in item.trackers],
        )
        return torrent_id

    def _category_id(self, name: str) -> int:
        row = self._conn.execute("SELECT id FROM category WHERE name = ? COLLATE NOCASE", (name,)).fetchone()
        if row is not None:
            return row["id"]
        cursor = self._conn.execute(
            "INSERT INTO category(name, slug, description) VALUES (?, ?, ?)",
            (name, _slug(name), f"Category for {name} torrents"),
        )
        return cursor.lastrowid

    # ------------------------------------------------------------------
    def find(self, *, info_hash: str | None = None, magnet_link: str | None = None) -> dict | None:
        with self._lock:
            if info_hash:
                row = self._conn.execute("SELECT * FROM torrent WHERE info_hash = ?", (info_hash,)).fetchone()
            else:
                row = self._conn.execute("SELECT * FROM torrent WHERE magnet_link = ?", (magnet_link,)).fetchone()
        return dict(row) if row is not None else None

    def count(self, table: str = "torrent") -> int:
        if table not in {"torrent", "category", "torrent_file", "torrent_tracker"}:
            raise ValueError(f"Unknown table: {table}")
        with self._lock:
            return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def categories(self) -> list[dict]:
        with self._lock:
            rows = self._conn.execute("SELECT name, slug FROM category ORDER BY id").fetchall()
        return [dict(row) for row in rows]

    def ping(self) -> bool:
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error:
            return False
        return True


__all__ = ["SQLiteStoreSink"]
