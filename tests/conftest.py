"""Shared fixtures: isolated home directory, fake clock, config builders."""

from __future__ import annotations

import os
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable

import httpx
import pytest

from seedcrawl.config import (
    BackoffConfig,
    ConfigLocator,
    ConfigRepository,
    FetcherConfig,
    GlobalConfig,
    SelectorConfig,
    SourceConfig,
)
from seedcrawl.logging_conf import configure_logging
from seedcrawl.models import CanonicalRecord, FileEntry


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of blocking."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self._lock = Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += max(0.0, seconds)

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


@pytest.fixture(scope="session", autouse=True)
def _session_logging(tmp_path_factory: pytest.TempPathFactory) -> None:
    # Route structlog through stdlib handlers once, away from the repo's logs/.
    home = tmp_path_factory.mktemp("seedcrawl-logs")
    previous = os.environ.get("SEEDCRAWL_HOME")
    os.environ["SEEDCRAWL_HOME"] = str(home)
    try:
        configure_logging(verbose=False)
    finally:
        if previous is None:
            os.environ.pop("SEEDCRAWL_HOME", None)
        else:
            os.environ["SEEDCRAWL_HOME"] = previous


@pytest.fixture(autouse=True)
def seedcrawl_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("SEEDCRAWL_HOME", str(tmp_path))
    monkeypatch.delenv("INGEST_API_KEY", raising=False)
    monkeypatch.delenv("SEEDCRAWL_INGEST_URL", raising=False)
    return tmp_path


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_global_config() -> Callable[..., GlobalConfig]:
    def _builder(**overrides: Any) -> GlobalConfig:
        base: dict[str, Any] = {
            "fetcher": FetcherConfig(
                min_delay=0.0,
                max_in_flight=2,
                backoff=BackoffConfig(base_delay=1.0, multiplier=2.0, jitter=0.0, max_attempts=3),
            ),
            "default_sources": ["alpha", "beta"],
        }
        base.update(overrides)
        return GlobalConfig(**base)

    return _builder


@pytest.fixture
def sample_source_config() -> Callable[..., SourceConfig]:
    def _builder(**overrides: Any) -> SourceConfig:
        name = overrides.pop("source_name", "alpha")
        base: dict[str, Any] = {
            "source_name": name,
            "adapter": "css",
            "base_url": f"https://{name}.test",
            "min_delay": 0.0,
            "page_url_template": "/browse/{page}",
            "search_url_template": "/search/{query}/{page}",
            "selectors": SelectorConfig(
                row="li.item",
                title="a.title",
                magnet="a.magnet::attr:href",
                size="span.size",
                seeders="span.seeds",
                leechers="span.peers",
                category="span.cat",
            ),
        }
        base.update(overrides)
        return SourceConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> Iterable[ConfigRepository]:
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


@pytest.fixture
def make_record() -> Callable[..., CanonicalRecord]:
    def _builder(index: int = 1, **overrides: Any) -> CanonicalRecord:
        info_hash = f"{index:040x}"
        base: dict[str, Any] = {
            "title": f"Sample Torrent {index}",
            "magnet_link": f"magnet:?xt=urn:btih:{info_hash}&dn=sample-{index}",
            "info_hash": info_hash,
            "size_bytes": 1024 * index,
            "seeders": 10,
            "leechers": 2,
            "category_name": "Movies",
            "files": (FileEntry(name=f"sample-{index}.mkv", size_bytes=1024 * index, is_video=True),),
            "trackers": ("udp://tracker.example.org:1337/announce",),
            "source_name": "alpha",
        }
        base.update(overrides)
        return CanonicalRecord(**base)

    return _builder


def listing_html(items: Iterable[dict[str, str]]) -> str:
    rows = []
    for item in items:
        rows.append(
            '<li class="item">'
            f'<a class="title" href="/t/{item.get("id", "0")}">{item["title"]}</a>'
            f'<a class="magnet" href="{item.get("magnet", "")}">magnet</a>'
            f'<span class="size">{item.get("size", "1.0 GB")}</span>'
            f'<span class="seeds">{item.get("seeds", "10")}</span>'
            f'<span class="peers">{item.get("peers", "1")}</span>'
            "</li>"
        )
    return f"<html><body><ul>{''.join(rows)}</ul></body></html>"


@pytest.fixture
def site_transport() -> Callable[[dict[str, Any]], httpx.MockTransport]:
    """Serve canned pages keyed by full URL; unknown URLs return 404.

    Values may be a string (HTML), a ``dict``/``list`` (JSON) or an
    :class:`httpx.Response`. Every request URL is appended to ``.requests``.
    """

    def _builder(pages: dict[str, Any]) -> httpx.MockTransport:
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requests.append(url)
            body = pages.get(url)
            if body is None:
                return httpx.Response(404, html="<html>not found</html>")
            if isinstance(body, httpx.Response):
                return body
            if isinstance(body, (dict, list)):
                return httpx.Response(200, json=body)
            return httpx.Response(200, html=body)

        transport = httpx.MockTransport(handler)
        transport.requests = requests  # type: ignore[attr-defined]
        return transport

    return _builder


@pytest.fixture
def html_listing() -> Callable[[Iterable[dict[str, str]]], str]:
    return listing_html
