"""Error taxonomy shared by the crawl pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CrawlError(Exception):
    """Base class for every pipeline error."""


class FetchError(CrawlError):
    """Raised by the fetcher once a task cannot produce a page."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        retryable: bool,
        status_code: int | None = None,
        attempts: int = 1,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.retryable = retryable
        self.status_code = status_code
        self.attempts = attempts
        self.retry_after = retry_after


class RejectionReason(str, Enum):
    """Why a candidate (or a single tracker) did not make it into a record."""

    TITLE_TOO_SHORT = "title_too_short"
    MISSING_IDENTITY = "missing_identity"
    INVALID_TRACKER = "invalid_tracker"
    DOWNSTREAM_VALIDATION = "downstream_validation"
    DOWNSTREAM_ERROR = "downstream_error"


class RecordRejected(CrawlError):
    """Terminal normalisation failure for one candidate."""

    def __init__(self, reason: RejectionReason, detail: str | None = None) -> None:
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


class SinkError(CrawlError):
    """Batch submission failure; ``retryable`` marks transient causes."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        status_code: int | None = None,
        attempts: int = 1,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code
        self.attempts = attempts
        self.retry_after = retry_after


class OrchestratorFault(CrawlError):
    """Run-level failure, e.g. the dedup store is unreachable."""


@dataclass(slots=True)
class ParseAnomaly:
    """Non-fatal extraction problem noticed while parsing a page."""

    source_name: str
    url: str
    kind: str
    detail: str | None = None


__all__ = [
    "CrawlError",
    "FetchError",
    "OrchestratorFault",
    "ParseAnomaly",
    "RecordRejected",
    "RejectionReason",
    "SinkError",
]
