from __future__ import annotations

import json
from urllib.parse import parse_qs, urlparse

from seedcrawl.adapters import YtsAdapter
from seedcrawl.config import BUILTIN_SOURCES, SourceConfig
from seedcrawl.config.defaults import YTS_TRACKERS
from seedcrawl.models import RawPage

HASH_1080 = "a" * 40
HASH_720 = "b" * 40


def _adapter() -> YtsAdapter:
    return YtsAdapter(SourceConfig.model_validate(BUILTIN_SOURCES["yts"]))


def _page(adapter: YtsAdapter, payload) -> RawPage:
    task = adapter.list_targets(None, 1)[0]
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return RawPage(
        task=task, url=task.url, status_code=200, text=text, headers={}, content_type="application/json"
    )


def _movie(**overrides) -> dict:
    movie = {
        "title": "Inception",
        "year": 2010,
        "genres": ["Action", "Sci-Fi"],
        "medium_cover_image": "https://yts.mx/assets/images/movies/inception/medium-cover.jpg",
        "description_full": "A thief who steals corporate secrets.",
        "torrents": [
            {"quality": "720p", "hash": HASH_720, "size": "1.1 GB", "seeds": 100, "peers": 5, "url": "https://yts.mx/torrent/download/B"},
            {"quality": "1080p", "hash": HASH_1080, "size": "2.2 GB", "seeds": 250, "peers": 12, "url": "https://yts.mx/torrent/download/A"},
        ],
    }
    movie.update(overrides)
    return movie


def test_latest_targets_are_capped_by_source_max_pages() -> None:
    adapter = _adapter()
    tasks = adapter.list_targets(None, 9)
    assert len(tasks) == 5
    query = parse_qs(urlparse(tasks[2].url).query)
    assert tasks[2].url.startswith("https://yts.mx/api/v2/list_movies.json?")
    assert query["sort_by"] == ["date_added"]
    assert query["order_by"] == ["desc"]
    assert query["page"] == ["3"]
    assert all(task.expect == "json" and task.group == "latest" for task in tasks)


def test_search_target_is_single_request() -> None:
    tasks = _adapter().list_targets("the matrix", 3)
    assert len(tasks) == 1
    query = parse_qs(urlparse(tasks[0].url).query)
    assert query["query_term"] == ["the matrix"]
    assert query["limit"] == ["50"]


def test_parse_picks_best_quality_torrent() -> None:
    adapter = _adapter()
    payload = {"status": "ok", "data": {"movies": [_movie(), _movie(title="Broken", torrents=[])]}}
    result = adapter.parse(_page(adapter, payload))

    assert result.skipped_rows == 1
    assert len(result.candidates) == 1
    candidate = result.candidates[0]
    assert candidate.title == "Inception (2010)"
    assert candidate.info_hash == HASH_1080
    assert candidate.magnet_or_url == "https://yts.mx/torrent/download/A"
    assert candidate.raw_size == "2.2 GB"
    assert candidate.raw_seeders == "250"
    assert candidate.category_hint == "Movies"
    assert candidate.trackers == list(YTS_TRACKERS)
    assert candidate.tags == ["2010", "Action", "Sci-Fi"]
    assert candidate.files[0].name == "Inception.2010.1080p.mp4"
    assert result.anomalies == []


def test_empty_movie_list_ends_pagination_quietly() -> None:
    adapter = _adapter()
    result = adapter.parse(_page(adapter, {"status": "ok", "data": {"movie_count": 0}}))
    assert result.last_page is True
    assert result.candidates == []
    assert result.anomalies == []


def test_malformed_json_becomes_anomaly() -> None:
    adapter = _adapter()
    result = adapter.parse(_page(adapter, "<html>maintenance</html>"))
    assert result.candidates == []
    assert result.skipped_rows == 1
    assert [anomaly.kind for anomaly in result.anomalies] == ["parse_error"]
