"""IOE Exam Section notice board."""

from __future__ import annotations

import re
from typing import Optional

from bs4 import BeautifulSoup

from noticewatch.core.models import Notice
from noticewatch.sources.base import NoticeExtractor, absolute_url, element_text

_NOTICE_ID = re.compile(r"/Notice/Index/(\d+)", re.IGNORECASE)


def notice_id_from_link(link: str) -> Optional[str]:
    match = _NOTICE_ID.search(link)
    return match.group(1) if match else None


class IoeExamExtractor(NoticeExtractor):
    """Rows of ``#datatable``: title, date, a view link and a download link."""

    name = "ioe_exam"
    source_label = "IOE Exam Section"
    url = "http://exam.ioe.edu.np/"

    def parse_listing(self, html: str, base_url: str) -> list[Notice]:
        soup = BeautifulSoup(html, "html.parser")
        notices: list[Notice] = []

        for index, row in enumerate(soup.select("#datatable tbody tr"), start=1):
            title = element_text(row.select_one("td:nth-child(2) a"))
            date = element_text(row.select_one("td:nth-child(3)"))
            view = row.select_one('td:nth-child(4) a[href*="/Notice/Index/"]')
            download = row.select_one('td:nth-child(4) a[target="_blank"]')

            link = absolute_url(view.get("href") if view else None, base_url)
            if not title or not date or not link:
                self._skip_row(index, "missing title, date or notice link")
                continue

            pdf_link = absolute_url(download.get("href") if download else None, base_url)
            notices.append(
                Notice(
                    title=title,
                    link=link,
                    date=date,
                    source=self.source_label,
                    attachments=(pdf_link,) if pdf_link else (),
                    id=notice_id_from_link(link),
                )
            )

        return notices
