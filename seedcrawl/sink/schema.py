"""Ingest payload schema enforced by the downstream store."""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import RejectionReason

MAX_BATCH_SIZE = 100


def _require_url(value: str | None) -> str | None:
    if value is None:
        return value
    parsed = urlparse(value)
    if not parsed.scheme or not (parsed.netloc or parsed.path or parsed.query):
        raise ValueError(f"not a valid URL: {value!r}")
    return value


class IngestFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    path: str | None = None
    size: int = Field(ge=0)
    index: int | None = Field(default=None, ge=0)
    is_video: bool = Field(default=False, alias="isVideo")


class IngestTracker(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    is_active: bool = Field(default=True, alias="isActive")

    @field_validator("url")
    @classmethod
    def _url(cls, value: str) -> str:
        return _require_url(value)


class IngestTorrent(BaseModel):
    """One torrent as accepted by the ingest endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    magnet_link: str | None = Field(default=None, alias="magnetLink")
    info_hash: str | None = Field(default=None, alias="infoHash")
    size: int | None = Field(default=None, ge=0)
    seeders: int = Field(default=0, ge=0)
    leechers: int = Field(default=0, ge=0)
    category_name: str | None = Field(default=None, alias="categoryName")
    poster_url: str | None = Field(default=None, alias="posterUrl")
    files: list[IngestFile] = Field(default_factory=list)
    trackers: list[IngestTracker] = Field(default_factory=list)

    @field_validator("magnet_link", "poster_url")
    @classmethod
    def _urls(cls, value: str | None) -> str | None:
        return _require_url(value)


class IngestBatch(BaseModel):
    torrents: list[IngestTorrent] = Field(min_length=1, max_length=MAX_BATCH_SIZE)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def validation_reason(exc: ValidationError) -> str:
    """`downstream_validation: <field>: <message>` for the first failing field."""

    errors = exc.errors()
    if not errors:
        return f"{RejectionReason.DOWNSTREAM_VALIDATION.value}: {exc}"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return f"{RejectionReason.DOWNSTREAM_VALIDATION.value}: {detail}"


__all__ = [
    "IngestBatch",
    "IngestFile",
    "IngestTorrent",
    "IngestTracker",
    "MAX_BATCH_SIZE",
    "validation_reason",
]
