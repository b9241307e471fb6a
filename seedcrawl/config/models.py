"""Pydantic models used across the seedcrawl configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from ..engine.backoff import BackoffPolicy

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class ScheduleType(str, Enum):
    """Scheduler modes for the scheduled-run entry point."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class ScheduleConfig(BaseModel):
    """Configuration describing when the scheduled crawl should run."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default=3600,
        description="Cron expression, interval seconds or ISO datetime, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class BackoffConfig(BaseModel):
    """Serialisable form of :class:`BackoffPolicy`."""

    base_delay: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=60.0, ge=0)
    jitter: float = Field(default=1.0, ge=0)
    max_attempts: int = Field(default=3, ge=1)

    def to_policy(self) -> BackoffPolicy:
        from ..engine.backoff import BackoffPolicy

        return BackoffPolicy(
            base_delay=self.base_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
            max_attempts=self.max_attempts,
        )


class FetcherConfig(BaseModel):
    """Politeness and retry controls for outgoing page requests."""

    min_delay: float = Field(default=3.0, ge=0)
    max_in_flight: int = Field(default=2, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    headers: dict[str, str] = Field(default_factory=dict)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)


class SinkConfig(BaseModel):
    """Where canonical records are submitted."""

    kind: Literal["http", "sqlite"] = "sqlite"
    endpoint: str | None = None
    api_key: str | None = None
    batch_size: int = Field(default=100, ge=1, le=100)
    submit_timeout: float = Field(default=60.0, gt=0)
    store_path: Path = Field(default=Path("data/store.db"))
    backoff: BackoffConfig = Field(
        default_factory=lambda: BackoffConfig(base_delay=5.0, max_attempts=4)
    )

    @field_validator("store_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _require_endpoint(self) -> "SinkConfig":
        if self.kind == "http" and not self.endpoint:
            raise ValueError("http sink requires an endpoint")
        return self


class DedupConfig(BaseModel):
    """Fingerprint store settings."""

    backend: Literal["sqlite", "memory"] = "sqlite"
    store_path: Path = Field(default=Path("data/history/dedup.db"))
    reingest_window_seconds: float | None = Field(default=None, gt=0)
    entry_ttl_seconds: float | None = Field(default=None, gt=0)

    @field_validator("store_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)


class RunOptions(BaseModel):
    """Per-run knobs accepted by the manual and scheduled entry points."""

    model_config = ConfigDict(populate_by_name=True)

    max_pages: int = Field(default=3, ge=1, alias="maxPages")
    query: str | None = None

    @field_validator("query", mode="before")
    @classmethod
    def _blank_query(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SourceCategory(BaseModel):
    name: str
    path: str


class SelectorConfig(BaseModel):
    """CSS selectors for the generic listing adapter."""

    row: str
    title: str
    magnet: str | None = None
    info_hash: str | None = None
    size: str | None = None
    seeders: str | None = None
    leechers: str | None = None
    category: str | None = None
    poster: str | None = None
    description: str | None = None


class SourceConfig(BaseModel):
    """Full definition of a crawl source."""

    source_name: str
    adapter: str
    base_url: str
    api_url: str | None = None
    enabled: bool = True
    min_delay: float | None = Field(default=None, ge=0)
    max_pages: int | None = Field(default=None, ge=1)
    max_rows_per_page: int = Field(default=25, ge=1)
    headers: dict[str, str] = Field(default_factory=dict)
    categories: list[SourceCategory] = Field(default_factory=list)
    search_path: str | None = None
    page_url_template: str | None = None
    search_url_template: str | None = None
    selectors: SelectorConfig | None = None
    trackers: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_source(self) -> "SourceConfig":
        if not self.source_name.strip():
            raise ValueError("source_name cannot be empty")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        if self.adapter == "css" and (self.selectors is None or not self.page_url_template):
            raise ValueError("css adapter requires selectors and page_url_template")
        return self


class GlobalConfig(BaseModel):
    """Global controls shared across sources."""

    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    default_sources: list[str] = Field(default_factory=lambda: ["yts", "1337x"])
    default_options: RunOptions = Field(default_factory=RunOptions)
    max_concurrent_sources: int = Field(default=2, ge=1)
    run_history_path: Path = Field(default=Path("data/history/runs.db"))

    @field_validator("run_history_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)


def resolve_path(path: Path, base_dir: Path) -> Path:
    """Return ``path`` anchored at ``base_dir`` unless already absolute."""

    if not path.is_absolute():
        return (base_dir / path).resolve()
    return path


__all__ = [
    "BackoffConfig",
    "DedupConfig",
    "FetcherConfig",
    "GlobalConfig",
    "RunOptions",
    "ScheduleConfig",
    "ScheduleType",
    "SelectorConfig",
    "SinkConfig",
    "SourceCategory",
    "SourceConfig",
    "resolve_path",
]
