"""Storage abstractions for dedup fingerprints and run history."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict

from ..models import RunSummary

SCHEMAS: dict[str, str] = {
    "dedup": """
        CREATE TABLE IF NOT EXISTS dedup_entries (
            fingerprint TEXT PRIMARY KEY,
            first_seen_at REAL NOT NULL,
            last_seen_at REAL NOT NULL,
            expires_at REAL,
            source_name TEXT,
            hits INTEGER NOT NULL DEFAULT 1
        );
    """,
    "history": """
        CREATE TABLE IF NOT EXISTS crawl_runs (
            run_id TEXT PRIMARY KEY,
            started_at TEXT NOT NULL,
            finished_at TEXT,
            status TEXT NOT NULL,
            payload TEXT
        );
        CREATE TABLE IF NOT EXISTS source_stats (
            source_name TEXT PRIMARY KEY,
            runs INTEGER NOT NULL DEFAULT 0,
            successes INTEGER NOT NULL DEFAULT 0,
            failures INTEGER NOT NULL DEFAULT 0,
            candidates INTEGER NOT NULL DEFAULT 0,
            accepted INTEGER NOT NULL DEFAULT 0,
            duplicates INTEGER NOT NULL DEFAULT 0,
            rejected INTEGER NOT NULL DEFAULT 0,
            last_run_at TEXT,
            last_error TEXT
        );
    """,
    "store": """
        CREATE TABLE IF NOT EXISTS category (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            slug TEXT NOT NULL UNIQUE,
            description TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE TABLE IF NOT EXISTS torrent (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            magnet_link TEXT NOT NULL DEFAULT '',
            info_hash TEXT UNIQUE,
            size INTEGER,
            seeders INTEGER NOT NULL DEFAULT 0,
            leechers INTEGER NOT NULL DEFAULT 0,
            category_id INTEGER REFERENCES category(id),
            poster_url TEXT,
            source_name TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE INDEX IF NOT EXISTS torrent_magnet_idx ON torrent(magnet_link);
        CREATE TABLE IF NOT EXISTS torrent_file (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            torrent_id TEXT NOT NULL REFERENCES torrent(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            size INTEGER NOT NULL,
            is_video INTEGER NOT NULL DEFAULT 0
        );
        CREATE TABLE IF NOT EXISTS torrent_tracker (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            torrent_id TEXT NOT NULL REFERENCES torrent(id) ON DELETE CASCADE,
            url TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1
        );
    """,
}


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees.

    Connections run in autocommit mode so callers can open explicit
    ``BEGIN IMMEDIATE`` transactions where they need atomicity.
    """

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path, schema: str = "dedup") -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn, schema)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection, schema: str) -> None:
        try:
            script = SCHEMAS[schema]
        except KeyError as exc:
            raise ValueError(f"Unknown schema: {schema}") from exc
        conn.executescript(script)

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class RunHistory:
    """Persist run summaries and cumulative per-source statistics."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        self._conn = self.manager.connect(db_path, schema="history")

    def record(self, summary: RunSummary) -> None:
        payload = summary.to_dict()
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                self._conn.execute(
                    "INSERT OR REPLACE INTO crawl_runs(run_id, started_at, finished_at, status, payload) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        summary.run_id,
                        summary.started_at.isoformat(),
                        summary.finished_at.isoformat(),
                        summary.status.value,
                        json.dumps(payload, ensure_ascii=False),
                    ),
                )
                for outcome in summary.per_source:
                    self._conn.execute(
                        """
                        INSERT INTO source_stats(
                            source_name, runs, successes, failures, candidates,
                            accepted, duplicates, rejected, last_run_at, last_error
                        ) VALUES (?, 1, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(source_name) DO UPDATE SET
                            runs = runs + 1,
                            successes = successes + excluded.successes,
                            failures = failures + excluded.failures,
                            candidates = candidates + excluded.candidates,
                            accepted = accepted + excluded.accepted,
                            duplicates = duplicates + excluded.duplicates,
                            rejected = rejected + excluded.rejected,
                            last_run_at = excluded.last_run_at,
                            last_error = excluded.last_error
                        """,
                        (
                            outcome.source_name,
                            int(outcome.success),
                            int(not outcome.success),
                            outcome.candidate_count,
                            outcome.accepted_count,
                            outcome.duplicate_count,
                            outcome.rejected_count + outcome.sink_rejected_count,
                            summary.finished_at.isoformat(),
                            outcome.error,
                        ),
                    )
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def recent_runs(self, limit: int = 10) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT payload FROM crawl_runs ORDER BY started_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [json.loads(row["payload"]) for row in rows if row["payload"]]

    def source_stats(self) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM source_stats ORDER BY source_name").fetchall()
        return [dict(row) for row in rows]

    def last_run_at(self) -> datetime | None:
        with self._lock:
            row = self._conn.execute("SELECT MAX(finished_at) AS latest FROM crawl_runs").fetchone()
        if row is None or row["latest"] is None:
            return None
        return datetime.fromisoformat(row["latest"])


__all__ = ["RunHistory", "SCHEMAS", "SQLiteManager"]
