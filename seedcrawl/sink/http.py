"""Submit batches to the remote ingest API."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from typing import Any

import httpx
from pydantic import ValidationError

from ..errors import RejectionReason, SinkError
from ..models import CanonicalRecord
from .base import BatchResult, IngestionSink
from .schema import IngestBatch, IngestTorrent, validation_reason

try:
    __version__ = version("seedcrawl")
except PackageNotFoundError:
    __version__ = "0.0.0"

USER_AGENT = f"seedcrawl/{__version__}"
PERMANENT_STATUSES = {400, 401, 403, 404, 413, 422}


class HttpIngestionSink(IngestionSink):
    """POST ``{"torrents": [...]}`` to ``<endpoint>/ingest``.

    The response reports per-torrent failures by title; ``data.errors`` may
    be either a count or a list of ``{title, error}`` objects.
    """

    kind = "http"

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        *,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        base = endpoint.rstrip("/")
        self.url = base if base.endswith("/ingest") else f"{base}/ingest"
        headers = {"User-Agent": USER_AGENT, "Content-Type": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        self._client = httpx.Client(timeout=timeout, headers=headers, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _submit(self, records: list[CanonicalRecord]) -> BatchResult:
        # Records the endpoint would refuse are rejected here so they cannot fail the batch.
        local = BatchResult()
        sendable: list[CanonicalRecord] = []
        torrents: list[IngestTorrent] = []
        for record in records:
            try:
                torrents.append(IngestTorrent.model_validate(record.to_ingest_payload()))
            except ValidationError as exc:
                local.rejected.append((record, validation_reason(exc)))
                continue
            sendable.append(record)
        if not sendable:
            return local

        try:
            response = self._client.post(self.url, json=IngestBatch(torrents=torrents).to_wire())
        except httpx.TransportError as exc:
            raise SinkError(f"{type(exc).__name__}: {exc}", retryable=True) from exc

        status = response.status_code
        if status == 429 or status >= 500:
            raise SinkError(
                f"ingest endpoint returned {status}",
                retryable=True,
                status_code=status,
                retry_after=_retry_after(response),
            )
        if status in PERMANENT_STATUSES or status >= 300:
            raise SinkError(
                f"ingest endpoint rejected batch with {status}: {_error_message(response)}",
                retryable=False,
                status_code=status,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise SinkError("ingest endpoint returned malformed JSON", retryable=False, status_code=status) from exc
        if not isinstance(body, dict) or not body.get("success"):
            raise SinkError(
                f"ingest endpoint reported failure: {_error_message(response)}",
                retryable=False,
                status_code=status,
            )
        result = self._map_results(sendable, body.get("data") or {})
        result.rejected.extend(local.rejected)
        return result

    @staticmethod
    def _map_results(records: list[CanonicalRecord], data: dict[str, Any]) -> BatchResult:
        result = BatchResult()
        errors = data.get("errors")
        if isinstance(errors, list):
            failed: dict[str, list[str]] = {}
            for item in errors:
                if isinstance(item, dict) and item.get("title") is not None:
                    failed.setdefault(str(item["title"]), []).append(
                        str(item.get("error") or RejectionReason.DOWNSTREAM_ERROR.value)
                    )
            for record in records:
                messages = failed.get(record.title)
                if messages:
                    result.rejected.append((record, messages.pop(0)))
                else:
                    result.accepted.append(record)
            return result
        results = data.get("results")
        if isinstance(results, list) and isinstance(errors, int) and errors > 0:
            succeeded: dict[str, int] = {}
            for item in results:
                if isinstance(item, dict) and item.get("title") is not None:
                    succeeded[str(item["title"])] = succeeded.get(str(item["title"]), 0) + 1
            for record in records:
                if succeeded.get(record.title, 0) > 0:
                    succeeded[record.title] -= 1
                    result.accepted.append(record)
                else:
                    result.rejected.append((record, RejectionReason.DOWNSTREAM_ERROR.value))
            return result
        result.accepted.extend(records)
        return result


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or error)
        if error:
            return str(error)
    return str(body)[:200]


__all__ = ["HttpIngestionSink", "USER_AGENT"]
