"""Base class for site extractors.

An extractor fetches one listing page through the fetch policy and parses it
with BeautifulSoup. Parsing is kept in pure methods so it can be tested
against saved HTML without any network access.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urljoin

from bs4.element import Tag

from noticewatch.core.models import Notice
from noticewatch.core.ports import PageFetcher

LOGGER = logging.getLogger(__name__)


def absolute_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve ``href`` against the page it was found on."""

    if not href or not href.strip():
        return None
    return urljoin(base_url, href.strip())


def element_text(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    return element.get_text(" ", strip=True)


class NoticeExtractor(ABC):
    """Scrapes one notice board into ``Notice`` records."""

    name: str = ""
    source_label: str = ""
    url: str = ""

    def __init__(self, fetcher: PageFetcher) -> None:
        self._fetcher = fetcher

    async def extract(self) -> list[Notice]:
        LOGGER.info("[%s] Scraping %s", self.name, self.url)
        html = await self._fetcher.fetch(self.url)
        notices = await self.build_notices(html)
        LOGGER.info("[%s] Scraped %s notices", self.name, len(notices))
        return notices

    async def build_notices(self, html: str) -> list[Notice]:
        """Turn the listing page into notices. Override for detail-page lookups."""

        return self.parse_listing(html, self.url)

    @abstractmethod
    def parse_listing(self, html: str, base_url: str) -> list[Notice]:
        """Parse the listing page. Rows missing a title, link or date are skipped."""

    def _skip_row(self, index: int, reason: str) -> None:
        LOGGER.warning("[%s] Skipping row %s: %s", self.name, index, reason)
