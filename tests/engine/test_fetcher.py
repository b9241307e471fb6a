from __future__ import annotations

from threading import Thread

import httpx
import pytest

from seedcrawl.config import FetcherConfig
from seedcrawl.engine.fetcher import Fetcher
from seedcrawl.errors import FetchError
from seedcrawl.models import FetchTask


def _fetcher(config, transport, clock) -> Fetcher:
    return Fetcher(config, transport=transport, clock=clock, sleep=clock.sleep)


def _task(url: str = "https://alpha.test/browse/1", **kwargs) -> FetchTask:
    return FetchTask(source_name="alpha", url=url, **kwargs)


def test_fetch_returns_page(sample_global_config, fake_clock) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, html="<html>ok</html>")

    fetcher = _fetcher(sample_global_config(), httpx.MockTransport(handler), fake_clock)
    page = fetcher.fetch(_task())
    fetcher.close()
    assert page.status_code == 200
    assert page.text == "<html>ok</html>"
    assert page.url == "https://alpha.test/browse/1"
    assert "text/html" in page.content_type
    assert page.task.attempt == 1


def test_source_delay_spaces_consecutive_fetches(
    sample_global_config, sample_source_config, fake_clock
) -> None:
    moments: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        moments.append(fake_clock())
        return httpx.Response(200, html="<html></html>")

    fetcher = _fetcher(sample_global_config(), httpx.MockTransport(handler), fake_clock)
    fetcher.register_source(sample_source_config(min_delay=2.0))
    for page in range(1, 6):
        fetcher.fetch(_task(f"https://alpha.test/browse/{page}", page=page))
    fetcher.close()
    assert len(moments) == 5
    assert moments[-1] - moments[0] >= 8.0
    gaps = [later - earlier for earlier, later in zip(moments, moments[1:])]
    assert all(gap >= 2.0 for gap in gaps)


def test_source_headers_are_sent(sample_global_config, sample_source_config, fake_clock) -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, html="<html></html>")

    config = sample_global_config()
    fetcher = _fetcher(config, httpx.MockTransport(handler), fake_clock)
    fetcher.register_source(sample_source_config(headers={"Referer": "https://alpha.test/"}))
    fetcher.fetch(_task())
    fetcher.close()
    assert seen["referer"] == "https://alpha.test/"
    assert seen["user-agent"] == config.fetcher.user_agent


def test_transient_status_is_retried_with_backoff(sample_global_config, fake_clock) -> None:
    statuses = iter([503, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        if status == 200:
            return httpx.Response(200, html="<html>ok</html>")
        return httpx.Response(status, html="<html>busy</html>")

    fetcher = _fetcher(sample_global_config(), httpx.MockTransport(handler), fake_clock)
    task = _task()
    page = fetcher.fetch(task)
    fetcher.close()
    assert page.status_code == 200
    assert task.attempt == 3
    # base 1s then 2s, no jitter configured
    assert fake_clock.sleeps == [1.0, 2.0]


def test_retry_after_header_extends_the_wait(sample_global_config, fake_clock) -> None:
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "7"}, html="<html>slow down</html>"),
            httpx.Response(200, html="<html>ok</html>"),
        ]
    )
    fetcher = _fetcher(
        sample_global_config(), httpx.MockTransport(lambda request: next(responses)), fake_clock
    )
    started = fake_clock()
    fetcher.fetch(_task())
    fetcher.close()
    assert fake_clock() - started >= 7.0


def test_network_errors_are_retryable(sample_global_config, fake_clock) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, html="<html>ok</html>")

    fetcher = _fetcher(sample_global_config(), httpx.MockTransport(handler), fake_clock)
    page = fetcher.fetch(_task())
    fetcher.close()
    assert page.status_code == 200
    assert calls["count"] == 2


def test_retries_are_bounded(sample_global_config, fake_clock) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(500, html="<html>boom</html>")

    fetcher = _fetcher(sample_global_config(), httpx.MockTransport(handler), fake_clock)
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(_task())
    fetcher.close()
    assert calls["count"] == 3
    assert excinfo.value.retryable is True
    assert excinfo.value.attempts == 3
    assert excinfo.value.status_code == 500


def test_client_errors_are_permanent(sample_global_config, fake_clock) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(404, html="<html>missing</html>")

    fetcher = _fetcher(sample_global_config(), httpx.MockTransport(handler), fake_clock)
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(_task())
    fetcher.close()
    assert calls["count"] == 1
    assert excinfo.value.retryable is False
    assert excinfo.value.attempts == 1
    assert fake_clock.sleeps == []


def test_unexpected_content_type_is_permanent(sample_global_config, fake_clock) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, html="<html>captcha</html>")

    fetcher = _fetcher(sample_global_config(), httpx.MockTransport(handler), fake_clock)
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(_task("https://api.alpha.test/list.json", expect="json"))
    fetcher.close()
    assert excinfo.value.retryable is False
    assert "json" in str(excinfo.value)


def test_politeness_wait_leaves_in_flight_slot_free(
    sample_global_config, sample_source_config, fake_clock
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, html="<html></html>")

    pages: list = []
    workers: list[Thread] = []

    def sleep(seconds: float) -> None:
        # While alpha waits out its delay, another source must get the only slot.
        if not workers:
            gamma = FetchTask(source_name="gamma", url="https://gamma.test/1")
            worker = Thread(target=lambda: pages.append(fetcher.fetch(gamma)), daemon=True)
            workers.append(worker)
            worker.start()
            worker.join(timeout=5)
        fake_clock.sleep(seconds)

    config = sample_global_config(fetcher=FetcherConfig(min_delay=0.0, max_in_flight=1))
    fetcher = Fetcher(config, transport=httpx.MockTransport(handler), clock=fake_clock, sleep=sleep)
    fetcher.register_source(sample_source_config(min_delay=5.0))
    fetcher.fetch(_task("https://alpha.test/browse/1"))
    fetcher.fetch(_task("https://alpha.test/browse/2"))
    fetcher.close()

    assert workers and not workers[0].is_alive()
    assert [page.url for page in pages] == ["https://gamma.test/1"]
    assert fake_clock.sleeps == [5.0]
