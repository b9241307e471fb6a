"""Adapter for the YTS JSON list API."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from ..config.defaults import YTS_TRACKERS
from ..models import CandidateFile, CandidateRecord, FetchTask, RawPage
from .base import PageParse, SiteAdapter

QUALITY_ORDER = {"1080p": 3, "720p": 2, "480p": 1}
SEARCH_LIMIT = 50
LATEST_LIMIT = 20


class YtsAdapter(SiteAdapter):
    """Movies from ``list_movies.json``; one candidate per movie."""

    name = "yts"

    @property
    def api_url(self) -> str:
        return (self.source.api_url or f"{self.source.base_url.rstrip('/')}/api/v2").rstrip("/")

    def list_targets(self, query: str | None, max_pages: int) -> list[FetchTask]:
        endpoint = f"{self.api_url}/list_movies.json"
        if query:
            params = urlencode({"query_term": query, "limit": SEARCH_LIMIT})
            return [self.task(f"{endpoint}?{params}", group="search", expect="json")]
        pages = self.max_pages_for(self.source, max_pages)
        tasks = []
        for page in range(1, pages + 1):
            params = urlencode(
                {"sort_by": "date_added", "order_by": "desc", "limit": LATEST_LIMIT, "page": page}
            )
            tasks.append(self.task(f"{endpoint}?{params}", group="latest", page=page, expect="json"))
        return tasks

    def _parse(self, page: RawPage) -> PageParse:
        payload = page.json()
        result = PageParse()
        movies = None
        if isinstance(payload, dict) and payload.get("status") == "ok":
            movies = (payload.get("data") or {}).get("movies")
        if not movies:
            result.last_page = True
            return result
        for movie in movies:
            candidate = self._movie(movie) if isinstance(movie, dict) else None
            if candidate is None:
                result.skipped_rows += 1
                continue
            result.candidates.append(candidate)
        return result

    def _movie(self, movie: dict[str, Any]) -> CandidateRecord | None:
        torrents = [item for item in movie.get("torrents") or [] if isinstance(item, dict)]
        if not movie.get("title") or not torrents:
            return None
        best = max(torrents, key=lambda item: QUALITY_ORDER.get(item.get("quality"), 0))
        year = movie.get("year")
        title = f"{movie['title']} ({year})" if year else str(movie["title"])
        size = best.get("size")
        tags = [str(year)] if year else []
        tags.extend(str(genre) for genre in movie.get("genres") or [])
        return CandidateRecord(
            source_name=self.source_name,
            title=title,
            magnet_or_url=best.get("url"),
            info_hash=best.get("hash"),
            raw_size=size,
            raw_seeders=_as_text(best.get("seeds")),
            raw_leechers=_as_text(best.get("peers")),
            category_hint="Movies",
            poster_url=movie.get("medium_cover_image") or movie.get("large_cover_image"),
            description=movie.get("description_full") or movie.get("summary"),
            files=[CandidateFile(f"{movie['title']}.{year}.{best.get('quality')}.mp4", size)],
            trackers=list(self.source.trackers or YTS_TRACKERS),
            tags=tags,
        )


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


__all__ = ["YtsAdapter"]
