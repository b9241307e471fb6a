from __future__ import annotations

from seedcrawl.adapters import X1337Adapter
from seedcrawl.config import BUILTIN_SOURCES, SourceConfig
from seedcrawl.models import FetchTask, RawPage

MAGNET = "magnet:?xt=urn:btih:0123456789abcdef0123456789abcdef01234567&dn=Ubuntu"

LISTING = """
<html><body><table class="table-list">
  <thead><tr><th>name</th><th>se</th><th>le</th><th>size</th></tr></thead>
  <tbody>
    <tr>
      <td class="coll-1 name">
        <a href="/sub/1/0/" class="icon"><i class="flaticon-apps"></i></a>
        <a href="/torrent/5512345/Ubuntu-24-04-Desktop-amd64/">Ubuntu 24.04 Desktop amd64</a>
      </td>
      <td class="coll-2 seeds">1,204</td>
      <td class="coll-3 leeches">37</td>
      <td class="coll-4 size">5.7 GB</td>
    </tr>
    <tr>
      <td class="coll-1 name"><a href="/advert/">Sponsored</a></td>
      <td class="coll-2 seeds">0</td>
      <td class="coll-3 leeches">0</td>
      <td class="coll-4 size">0 B</td>
    </tr>
  </tbody>
</table></body></html>
"""

DETAIL = f"""
<html><body>
  <h1>Ubuntu 24.04 Desktop amd64</h1>
  <ul class="breadcrumb"><li><a href="/">Home</a></li><li class="active">Applications</li></ul>
  <img class="torrent-poster" src="https://1337x.to/images/ubuntu.png">
  <a href="{MAGNET}">Magnet Download</a>
  <div class="description">Official desktop image.</div>
  <table>
    <tr class="file-row"><td class="file-name">ubuntu-24.04-desktop-amd64.iso</td><td class="file-size">5.7 GB</td></tr>
    <tr class="file-row"><td class="file-name">SHA256SUMS</td><td class="file-size">1 KB</td></tr>
  </table>
</body></html>
"""


def _adapter() -> X1337Adapter:
    return X1337Adapter(SourceConfig.model_validate(BUILTIN_SOURCES["1337x"]))


def _page(task: FetchTask, text: str) -> RawPage:
    return RawPage(task=task, url=task.url, status_code=200, text=text, headers={}, content_type="text/html")


def test_search_targets_follow_search_path() -> None:
    tasks = _adapter().list_targets("ubuntu desktop", 10)
    assert [task.url for task in tasks] == [
        "https://1337x.to/search/ubuntu%20desktop/1/",
        "https://1337x.to/search/ubuntu%20desktop/2/",
        "https://1337x.to/search/ubuntu%20desktop/3/",
    ]
    assert {task.group for task in tasks} == {"search"}


def test_latest_targets_walk_categories() -> None:
    tasks = _adapter().list_targets(None, 2)
    assert [task.url for task in tasks] == ["https://1337x.to/movies/", "https://1337x.to/tv/"]
    assert tasks[0].group == "category:Movies"
    assert tasks[1].context == {"category": "TV"}


def test_listing_rows_become_detail_follow_ups() -> None:
    adapter = _adapter()
    listing_task = adapter.list_targets(None, 1)[0]
    result = adapter.parse(_page(listing_task, LISTING))

    assert result.candidates == []
    assert result.skipped_rows == 1
    assert len(result.follow_ups) == 1
    follow_up = result.follow_ups[0]
    assert follow_up.kind == "detail"
    assert follow_up.url == "https://1337x.to/torrent/5512345/Ubuntu-24-04-Desktop-amd64/"
    assert follow_up.context["title"] == "Ubuntu 24.04 Desktop amd64"
    assert follow_up.context["seeders"] == "1,204"
    assert follow_up.context["leechers"] == "37"
    assert follow_up.context["size"] == "5.7 GB"
    assert follow_up.context["category"] == "Movies"
    assert follow_up.context["torrent_id"] == "5512345"


def test_detail_page_yields_candidate() -> None:
    adapter = _adapter()
    detail_task = adapter.task(
        "https://1337x.to/torrent/5512345/Ubuntu-24-04-Desktop-amd64/",
        kind="detail",
        context={"title": "Ubuntu 24.04 Desktop amd64", "seeders": "1,204", "leechers": "37", "size": "5.7 GB"},
    )
    result = adapter.parse(_page(detail_task, DETAIL))

    assert len(result.candidates) == 1
    candidate = result.candidates[0]
    assert candidate.title == "Ubuntu 24.04 Desktop amd64"
    assert candidate.magnet_or_url == MAGNET
    assert candidate.category_hint == "Applications"
    assert candidate.poster_url == "https://1337x.to/images/ubuntu.png"
    assert candidate.description == "Official desktop image."
    assert [(item.name, item.raw_size) for item in candidate.files] == [
        ("ubuntu-24.04-desktop-amd64.iso", "5.7 GB"),
        ("SHA256SUMS", "1 KB"),
    ]


def test_empty_search_page_stops_pagination() -> None:
    adapter = _adapter()
    search_task = adapter.list_targets("nothing", 3)[1]
    result = adapter.parse(_page(search_task, "<html><body><p>No results were returned.</p></body></html>"))
    assert result.last_page is True
    assert result.anomalies == []


def test_empty_category_page_is_flagged() -> None:
    adapter = _adapter()
    category_task = adapter.list_targets(None, 1)[0]
    result = adapter.parse(_page(category_task, "<html><body>Please enable JavaScript</body></html>"))
    assert result.last_page is False
    assert [anomaly.kind for anomaly in result.anomalies] == ["empty_page"]
