"""Turn raw adapter candidates into validated canonical records."""

from __future__ import annotations

import html
import math
import re
from typing import Iterable
from urllib.parse import urlparse

import structlog

from ..errors import RecordRejected, RejectionReason
from ..models import CandidateRecord, CanonicalRecord, FileEntry

SIZE_PATTERN = re.compile(r"^([\d.,]+)\s*([KMGT]?I?B?)$")
INFO_HASH_PATTERN = re.compile(r"btih:([a-fA-F0-9]{40})(?![0-9a-zA-Z])", re.IGNORECASE)
RAW_HASH_PATTERN = re.compile(r"^[a-fA-F0-9]{40}$")
WHITESPACE = re.compile(r"\s+")

SIZE_MULTIPLIERS = {"": 1, "B": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}

VIDEO_EXTENSIONS = frozenset(
    {
        ".mp4", ".avi", ".mkv", ".mov", ".wmv", ".flv", ".webm", ".m4v", ".mpg", ".mpeg",
        ".3gp", ".ogv", ".ts", ".m2ts", ".mp4v", ".hevc", ".h264", ".xvid", ".divx",
    }
)

TRACKER_SCHEMES = frozenset({"http", "https", "udp", "ws", "wss"})
LINK_SCHEMES = frozenset({"magnet", "http", "https"})

# Order matters: the first group with a matching keyword wins.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Movies", ("movie", "film", "cinema", "theatrical", "dvdrip", "bdrip", "webrip", "720p", "1080p", "4k")),
    ("TV Shows", ("season", "episode", "series", "tv", "show", "s01", "e01", "complete")),
    ("Documentaries", ("documentary", "docu", "document")),
    ("Anime", ("anime", "manga", "ova", "animated")),
    ("Software", ("software", "app", "application", "windows", "mac", "linux", "program")),
    ("Games", ("game", "gaming", "pc game", "ps4", "xbox", "switch", "steam")),
    ("Music", ("album", "music", "mp3", "flac", "soundtrack", "audio")),
    ("Books", ("ebook", "book", "novel", "pdf", "epub", "mobi", "audiobook")),
)
DEFAULT_CATEGORY = "Other"
MIN_TITLE_LENGTH = 3


def clean_text(value: str | None) -> str:
    if not value:
        return ""
    return WHITESPACE.sub(" ", html.unescape(value)).strip()


def parse_size(raw: str | None) -> int:
    """Parse a human size like ``"1.5 GB"`` into bytes (binary units).

    Unparseable input yields 0 rather than an error.
    """

    if not raw or not isinstance(raw, str):
        return 0
    match = SIZE_PATTERN.match(raw.upper().strip())
    if not match:
        return 0
    number, unit = match.groups()
    try:
        value = float(number.replace(",", ""))
    except ValueError:
        return 0
    multiplier = SIZE_MULTIPLIERS.get(unit[:1], 1)
    if not math.isfinite(value):
        return 0
    return max(0, math.floor(value * multiplier))


def extract_info_hash(magnet: str | None) -> str | None:
    if not magnet:
        return None
    match = INFO_HASH_PATTERN.search(magnet)
    return match.group(1).lower() if match else None


def infer_category(title: str, tags: Iterable[str] = ()) -> str:
    haystack = [title.lower(), *(tag.lower() for tag in tags if tag)]
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords for text in haystack):
            return category
    return DEFAULT_CATEGORY


def is_video_file(name: str | None) -> bool:
    if not name or "." not in name:
        return False
    return name[name.rfind(".") :].lower() in VIDEO_EXTENSIONS


def is_valid_tracker_url(url: str | None) -> bool:
    if not url:
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in TRACKER_SCHEMES and bool(parsed.netloc)


def parse_count(raw: str | int | None) -> int:
    """Lenient integer parse for seeder/leecher counts; never negative."""

    if raw is None:
        return 0
    if isinstance(raw, int):
        return max(0, raw)
    digits = re.match(r"^\s*-?[\d,]+", str(raw))
    if not digits:
        return 0
    try:
        return max(0, int(digits.group(0).replace(",", "")))
    except ValueError:
        return 0


class Normalizer:
    """Validate candidates; the rules are pure apart from logging."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("seedcrawl.normalizer")

    def normalize(self, candidate: CandidateRecord) -> CanonicalRecord:
        title = clean_text(candidate.title)
        if len(title) < MIN_TITLE_LENGTH:
            raise RecordRejected(RejectionReason.TITLE_TOO_SHORT, f"title {title!r} is too short")

        magnet = self._link(candidate.magnet_or_url)
        info_hash = self._info_hash(candidate.info_hash) or extract_info_hash(magnet)
        if not magnet and not info_hash:
            raise RecordRejected(
                RejectionReason.MISSING_IDENTITY, "candidate has neither magnet link nor info hash"
            )

        hint = clean_text(candidate.category_hint)
        category = hint or infer_category(title, candidate.tags)

        return CanonicalRecord(
            title=title,
            description=clean_text(candidate.description) or None,
            magnet_link=magnet,
            info_hash=info_hash,
            size_bytes=parse_size(candidate.raw_size),
            seeders=parse_count(candidate.raw_seeders),
            leechers=parse_count(candidate.raw_leechers),
            category_name=category,
            poster_url=(candidate.poster_url or "").strip() or None,
            files=tuple(self._files(candidate)),
            trackers=tuple(self._trackers(candidate)),
            source_name=candidate.source_name,
        )

    # ------------------------------------------------------------------
    @staticmethod
    def _link(value: str | None) -> str | None:
        link = (value or "").strip()
        if not link:
            return None
        scheme = link.split(":", 1)[0].lower() if ":" in link else ""
        return link if scheme in LINK_SCHEMES else None

    @staticmethod
    def _info_hash(value: str | None) -> str | None:
        raw = (value or "").strip()
        if RAW_HASH_PATTERN.match(raw):
            return raw.lower()
        return None

    @staticmethod
    def _files(candidate: CandidateRecord) -> list[FileEntry]:
        files: list[FileEntry] = []
        for item in candidate.files:
            name = clean_text(item.name)
            size = parse_size(item.raw_size)
            if not name or size <= 0:
                continue
            files.append(FileEntry(name=name, size_bytes=size, is_video=is_video_file(name)))
        return files

    def _trackers(self, candidate: CandidateRecord) -> list[str]:
        trackers: list[str] = []
        for url in candidate.trackers:
            cleaned = (url or "").strip()
            if not is_valid_tracker_url(cleaned):
                self.logger.info(
                    "tracker_dropped",
                    source=candidate.source_name,
                    tracker=cleaned,
                    reason=RejectionReason.INVALID_TRACKER.value,
                )
                continue
            if cleaned not in trackers:
                trackers.append(cleaned)
        return trackers


_default = Normalizer()


def normalize(candidate: CandidateRecord) -> CanonicalRecord:
    return _default.normalize(candidate)


__all__ = [
    "CATEGORY_KEYWORDS",
    "Normalizer",
    "VIDEO_EXTENSIONS",
    "clean_text",
    "extract_info_hash",
    "infer_category",
    "is_valid_tracker_url",
    "is_video_file",
    "normalize",
    "parse_count",
    "parse_size",
]
