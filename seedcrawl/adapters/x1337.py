"""Adapter for 1337x listing and detail pages."""

from __future__ import annotations

import re
from urllib.parse import quote

from selectolax.parser import HTMLParser, Node

from ..models import CandidateFile, CandidateRecord, FetchTask, RawPage
from .base import PageParse, SiteAdapter

TORRENT_HREF = re.compile(r"/torrent/(\d+)/")
DEFAULT_SEARCH_PATH = "/search/{query}/{page}/"


def _text(node: Node | None, deep: bool = True) -> str | None:
    if node is None:
        return None
    value = node.text(deep=deep, separator=" ", strip=True)
    return value or None


class X1337Adapter(SiteAdapter):
    """Two-stage crawl: listing rows become detail-page follow-ups.

    Without a query the configured category pages are crawled, capped at
    ``max_pages`` pages in total.
    """

    name = "1337x"

    def list_targets(self, query: str | None, max_pages: int) -> list[FetchTask]:
        pages = self.max_pages_for(self.source, max_pages)
        if query:
            template = self.source.search_path or DEFAULT_SEARCH_PATH
            return [
                self.task(
                    self.absolute(template.format(query=quote(query, safe=""), page=page)),
                    group="search",
                    page=page,
                    context={},
                )
                for page in range(1, pages + 1)
            ]
        return [
            self.task(
                self.absolute(category.path),
                group=f"category:{category.name}",
                context={"category": category.name},
            )
            for category in self.source.categories[:pages]
        ]

    def _parse(self, page: RawPage) -> PageParse:
        tree = HTMLParser(page.text)
        if page.task.kind == "detail":
            return self._parse_detail(page, tree)
        return self._parse_listing(page, tree)

    def _parse_listing(self, page: RawPage, tree: HTMLParser) -> PageParse:
        result = PageParse()
        rows = [row for row in tree.css("tr") if row.css_first("th") is None]
        for row in rows[: self.source.max_rows_per_page]:
            link = next(
                (
                    anchor
                    for anchor in row.css("a")
                    if TORRENT_HREF.search(anchor.attributes.get("href") or "")
                ),
                None,
            )
            if link is None:
                result.skipped_rows += 1
                continue
            href = link.attributes.get("href") or ""
            title = _text(link)
            if not title:
                result.skipped_rows += 1
                continue
            torrent_id = TORRENT_HREF.search(href).group(1)
            context = {
                "title": title,
                "seeders": _text(row.css_first("td.seeds, td.seeders")),
                "leechers": _text(row.css_first("td.leeches, td.leechers")),
                "size": _text(row.css_first("td.size"), deep=False),
                "category": page.task.context.get("category"),
                "torrent_id": torrent_id,
            }
            result.follow_ups.append(
                self.task(
                    self.absolute(href),
                    kind="detail",
                    group=page.task.group,
                    page=page.task.page,
                    context=context,
                )
            )
        if not result.follow_ups and page.task.group == "search":
            result.last_page = True
        return result

    def _parse_detail(self, page: RawPage, tree: HTMLParser) -> PageParse:
        context = page.task.context
        magnet_node = tree.css_first('a[href^="magnet:"]')
        poster = tree.css_first("img.torrent-poster")
        breadcrumb = _text(tree.css_first("ul.breadcrumb li.active"))
        files = []
        for row in tree.css("tr.file-row"):
            name = _text(row.css_first("td.file-name"))
            size = _text(row.css_first("td.file-size"))
            if name and size:
                files.append(CandidateFile(name, size))
        candidate = CandidateRecord(
            source_name=self.source_name,
            title=context.get("title") or _text(tree.css_first("h1")) or "",
            magnet_or_url=magnet_node.attributes.get("href") if magnet_node else None,
            raw_size=context.get("size"),
            raw_seeders=context.get("seeders"),
            raw_leechers=context.get("leechers"),
            category_hint=context.get("category") or breadcrumb,
            poster_url=poster.attributes.get("src") if poster else None,
            description=_text(tree.css_first("div.description, #description")),
            files=files,
        )
        return PageParse(candidates=[candidate])


__all__ = ["X1337Adapter"]
