"""Site adapter SPI."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import urljoin

import structlog

from ..config import SourceConfig
from ..errors import ParseAnomaly
from ..models import CandidateRecord, FetchTask, RawPage


@dataclass(slots=True)
class PageParse:
    """What one fetched page yielded."""

    candidates: list[CandidateRecord] = field(default_factory=list)
    follow_ups: list[FetchTask] = field(default_factory=list)
    skipped_rows: int = 0
    last_page: bool = False
    anomalies: list[ParseAnomaly] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.candidates and not self.follow_ups


class SiteAdapter(ABC):
    """Translate a source's pages into candidate records.

    Subclasses implement :meth:`list_targets` and :meth:`_parse`. The public
    :meth:`parse` never raises: an unexpected extraction error turns into a
    skipped page plus a :class:`ParseAnomaly`, and a page that was expected
    to carry content but produced nothing is flagged the same way.
    """

    name: ClassVar[str] = ""

    def __init__(self, source: SourceConfig, logger: structlog.BoundLogger | None = None) -> None:
        self.source = source
        self.logger = logger or structlog.get_logger("seedcrawl.adapters").bind(
            source=source.source_name, adapter=self.name
        )

    @property
    def source_name(self) -> str:
        return self.source.source_name

    @abstractmethod
    def list_targets(self, query: str | None, max_pages: int) -> list[FetchTask]:
        """Initial fetch tasks for a run, in crawl order."""

    @abstractmethod
    def _parse(self, page: RawPage) -> PageParse:
        """Extract candidates and follow-up tasks from ``page``."""

    def parse(self, page: RawPage) -> PageParse:
        try:
            result = self._parse(page)
        except Exception as exc:  # noqa: BLE001
            anomaly = ParseAnomaly(self.source_name, page.url, "parse_error", f"{type(exc).__name__}: {exc}")
            self.logger.warning("parse_anomaly", url=page.url, kind=anomaly.kind, detail=anomaly.detail)
            return PageParse(skipped_rows=1, anomalies=[anomaly])
        if result.is_empty and page.task.expects_content and not result.last_page:
            anomaly = ParseAnomaly(self.source_name, page.url, "empty_page", "no candidates extracted")
            self.logger.warning("parse_anomaly", url=page.url, kind=anomaly.kind, detail=anomaly.detail)
            result.anomalies.append(anomaly)
        return result

    # ------------------------------------------------------------------
    def task(self, url: str, **kwargs: Any) -> FetchTask:
        return FetchTask(source_name=self.source_name, url=url, **kwargs)

    def absolute(self, href: str) -> str:
        return urljoin(self.source.base_url.rstrip("/") + "/", href)

    @staticmethod
    def max_pages_for(source: SourceConfig, requested: int) -> int:
        if source.max_pages is None:
            return max(1, requested)
        return max(1, min(requested, source.max_pages))


__all__ = ["PageParse", "SiteAdapter"]
