"""Generic selector-driven listing adapter."""

from __future__ import annotations

from urllib.parse import quote

from selectolax.parser import HTMLParser, Node

from ..models import CandidateRecord, FetchTask, RawPage
from .base import PageParse, SiteAdapter


class CssListingAdapter(SiteAdapter):
    """One candidate per listing row, located with CSS selectors.

    Selectors may end in ``::attr:<name>`` to read an attribute instead of
    the node text, e.g. ``a.magnet::attr:href``.
    """

    name = "css"

    def list_targets(self, query: str | None, max_pages: int) -> list[FetchTask]:
        pages = self.max_pages_for(self.source, max_pages)
        if query and self.source.search_url_template:
            template = self.source.search_url_template
            group = "search"
        else:
            template = self.source.page_url_template or ""
            group = "listing"
        encoded = quote(query or "", safe="")
        return [
            self.task(self.absolute(template.format(page=page, query=encoded)), group=group, page=page)
            for page in range(1, pages + 1)
        ]

    def _parse(self, page: RawPage) -> PageParse:
        selectors = self.source.selectors
        result = PageParse()
        if selectors is None:
            return result
        rows = HTMLParser(page.text).css(selectors.row)
        for row in rows[: self.source.max_rows_per_page]:
            title = self._extract(row, selectors.title)
            if not title:
                result.skipped_rows += 1
                continue
            magnet = self._extract(row, selectors.magnet)
            result.candidates.append(
                CandidateRecord(
                    source_name=self.source_name,
                    title=title,
                    magnet_or_url=self.absolute(magnet) if magnet and magnet.startswith("/") else magnet,
                    info_hash=self._extract(row, selectors.info_hash),
                    raw_size=self._extract(row, selectors.size),
                    raw_seeders=self._extract(row, selectors.seeders),
                    raw_leechers=self._extract(row, selectors.leechers),
                    category_hint=self._extract(row, selectors.category),
                    poster_url=self._extract(row, selectors.poster),
                    description=self._extract(row, selectors.description),
                    trackers=list(self.source.trackers),
                )
            )
        if not rows and page.task.group == "search":
            result.last_page = True
        return result

    @staticmethod
    def _extract(row: Node, selector: str | None) -> str | None:
        if not selector:
            return None
        css, _, attr = selector.partition("::attr:")
        node = row.css_first(css.strip()) if css.strip() else row
        if node is None:
            return None
        if attr:
            value = node.attributes.get(attr.strip())
        else:
            value = node.text(separator=" ", strip=True)
        return value.strip() if value and value.strip() else None


__all__ = ["CssListingAdapter"]
