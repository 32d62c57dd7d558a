"""Pulchowk Campus notice widget.

The home page only lists titles and dates; attachments live on each post's
detail page, which is fetched separately.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Optional

from bs4 import BeautifulSoup

from noticewatch.core.models import Notice
from noticewatch.sources.base import NoticeExtractor, absolute_url, element_text

LOGGER = logging.getLogger(__name__)

UPLOADS_MARKER = "/wp-content/uploads/"


def parse_detail_attachments(html: str, page_url: str) -> tuple[str, ...]:
    """Collect upload links from a post body, first occurrence order kept."""

    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for anchor in soup.select(".entry-content a[href]"):
        href = anchor.get("href", "")
        if UPLOADS_MARKER not in href:
            continue
        link = absolute_url(href, page_url)
        if link and link not in links:
            links.append(link)
    return tuple(links)


class PcampusExtractor(NoticeExtractor):
    name = "pcampus"
    source_label = "Pulchowk Campus"
    url = "https://pcampus.edu.np/"

    def parse_listing(self, html: str, base_url: str) -> list[Notice]:
        soup = BeautifulSoup(html, "html.parser")
        items = soup.select("#recent-posts-2 ul li")
        if not items:
            LOGGER.warning("[%s] Could not find any notices in the widget", self.name)
            return []

        notices: list[Notice] = []
        for index, item in enumerate(items, start=1):
            anchor = item.select_one("a")
            title = element_text(anchor)
            link = absolute_url(anchor.get("href") if anchor else None, base_url)
            date = element_text(item.select_one(".post-date"))
            if not title or not date or not link:
                self._skip_row(index, "missing title, date or link")
                continue
            notices.append(Notice(title=title, link=link, date=date, source=self.source_label))
        return notices

    async def build_notices(self, html: str) -> list[Notice]:
        listing = self.parse_listing(html, self.url)
        detailed = await asyncio.gather(*(self._with_attachments(notice) for notice in listing))
        return [notice for notice in detailed if notice is not None]

    async def _with_attachments(self, notice: Notice) -> Optional[Notice]:
        try:
            page = await self._fetcher.fetch(notice.link)
        except Exception:
            LOGGER.exception("[%s] Failed to fetch details for %s", self.name, notice.link)
            return None
        return replace(notice, attachments=parse_detail_attachments(page, notice.link))
