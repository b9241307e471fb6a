"""Records flowing through the crawl pipeline."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


@dataclass(slots=True)
class CandidateFile:
    name: str
    raw_size: str | None = None


@dataclass(slots=True)
class CandidateRecord:
    """Raw, unvalidated extraction produced by a site adapter."""

    source_name: str
    title: str
    magnet_or_url: str | None = None
    raw_size: str | None = None
    raw_seeders: str | None = None
    raw_leechers: str | None = None
    category_hint: str | None = None
    poster_url: str | None = None
    files: list[CandidateFile] = field(default_factory=list)
    trackers: list[str] = field(default_factory=list)
    description: str | None = None
    info_hash: str | None = None
    tags: list[str] = field(default_factory=list)


class FileEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    size_bytes: int = Field(ge=0)
    is_video: bool = False


class CanonicalRecord(BaseModel):
    """Validated torrent entity ready for dedup and ingestion."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=3)
    description: str | None = None
    magnet_link: str | None = None
    info_hash: str | None = Field(default=None, pattern=r"^[0-9a-f]{40}$")
    size_bytes: int = Field(default=0, ge=0)
    seeders: int = Field(default=0, ge=0)
    leechers: int = Field(default=0, ge=0)
    category_name: str = "Other"
    poster_url: str | None = None
    files: tuple[FileEntry, ...] = ()
    trackers: tuple[str, ...] = ()
    source_name: str | None = None

    @model_validator(mode="after")
    def _require_identity(self) -> "CanonicalRecord":
        if not self.magnet_link and not self.info_hash:
            raise ValueError("record needs a magnet link or an info hash")
        return self

    @property
    def fingerprint(self) -> str:
        """Content identity; stable across seeders/leechers/poster changes."""

        if self.info_hash:
            seed = f"ih:{self.info_hash}"
        else:
            title = " ".join(self.title.casefold().split())
            seed = f"tm:{title}\x1f{(self.magnet_link or '').strip()}"
        return hashlib.sha256(seed.encode("utf-8")).hexdigest()

    def to_ingest_payload(self) -> dict[str, Any]:
        """Serialise into the camelCase shape accepted by the ingest API."""

        payload: dict[str, Any] = {
            "title": self.title,
            "size": self.size_bytes,
            "seeders": self.seeders,
            "leechers": self.leechers,
            "categoryName": self.category_name,
            "files": [
                {"name": item.name, "size": item.size_bytes, "isVideo": item.is_video}
                for item in self.files
            ],
            "trackers": [{"url": url, "isActive": True} for url in self.trackers],
        }
        optional = {
            "description": self.description,
            "magnetLink": self.magnet_link,
            "infoHash": self.info_hash,
            "posterUrl": self.poster_url,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload


@dataclass(slots=True)
class FetchTask:
    """Unit of scheduling; the fetcher mutates attempt bookkeeping on retry."""

    source_name: str
    url: str
    kind: str = "listing"
    group: str = "default"
    page: int = 1
    expect: str = "html"
    context: dict[str, Any] = field(default_factory=dict)
    expects_content: bool = True
    attempt: int = 0
    next_eligible_at: float = 0.0


@dataclass(slots=True)
class RawPage:
    task: FetchTask
    url: str
    status_code: int
    text: str
    headers: dict[str, str]
    content_type: str = ""
    elapsed_ms: float = 0.0

    def json(self) -> Any:
        return json.loads(self.text)


@dataclass(slots=True)
class DedupEntry:
    fingerprint: str
    first_seen_at: float
    last_seen_at: float
    expires_at: float | None = None
    source_name: str | None = None
    hits: int = 1


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class SourceOutcome:
    source_name: str
    success: bool
    candidate_count: int = 0
    accepted_count: int = 0
    duplicate_count: int = 0
    rejected_count: int = 0
    rejection_reasons: dict[str, int] = field(default_factory=dict)
    sink_rejected_count: int = 0
    sink_failed_count: int = 0
    pages_fetched: int = 0
    pages_failed: int = 0
    anomalies: int = 0
    skipped_rows: int = 0
    batches_submitted: int = 0
    batches_failed: int = 0
    cancelled: bool = False
    error: str | None = None

    @property
    def attempted_submission(self) -> bool:
        return self.batches_submitted + self.batches_failed > 0


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Aggregate result of one orchestrated crawl; immutable once returned."""

    run_id: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime
    per_source: tuple[SourceOutcome, ...] = ()
    fault: str | None = None

    @property
    def total_duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    @property
    def cancelled(self) -> bool:
        return self.status is RunStatus.CANCELLED

    @property
    def total_candidates(self) -> int:
        return sum(outcome.candidate_count for outcome in self.per_source)

    @property
    def total_accepted(self) -> int:
        return sum(outcome.accepted_count for outcome in self.per_source)

    @property
    def total_duplicates(self) -> int:
        return sum(outcome.duplicate_count for outcome in self.per_source)

    def outcome(self, source_name: str) -> SourceOutcome | None:
        for outcome in self.per_source:
            if outcome.source_name == source_name:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "total_duration_ms": self.total_duration_ms,
            "fault": self.fault,
            "totals": {
                "candidates": self.total_candidates,
                "accepted": self.total_accepted,
                "duplicates": self.total_duplicates,
            },
            "per_source": [asdict(outcome) for outcome in self.per_source],
        }


__all__ = [
    "CandidateFile",
    "CandidateRecord",
    "CanonicalRecord",
    "DedupEntry",
    "FetchTask",
    "FileEntry",
    "RawPage",
    "RunStatus",
    "RunSummary",
    "SourceOutcome",
]
