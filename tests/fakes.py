from __future__ import annotations

import os
from typing import Optional

from noticewatch.core.errors import DownloadTooLarge, RasterizeError
from noticewatch.core.models import AnnouncedRecord, ChannelMessage, Notice
from noticewatch.core.ports import DocumentProbe


class FakeStorage:
    def __init__(self) -> None:
        self.records: dict[str, AnnouncedRecord] = {}

    def has_been_announced(self, link: str) -> bool:
        return link in self.records

    def record_announced(self, record: AnnouncedRecord) -> None:
        self.records.setdefault(record.link, record)


class FakeNotifier:
    """Records what was sent; files are checked while they still exist."""

    def __init__(self, failures: Optional[list[Exception]] = None, max_files: int = 10, max_bytes: int = 50_000_000) -> None:
        self.max_files_per_message = max_files
        self.max_bytes_per_message = max_bytes
        self.failures = list(failures or [])
        self.calls = 0
        self.sent: list[ChannelMessage] = []
        self.sent_file_names: list[list[str]] = []

    async def send(self, message: ChannelMessage) -> None:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        assert all(os.path.exists(item.path) for item in message.files)
        self.sent.append(message)
        self.sent_file_names.append([item.display_name for item in message.files])


class FakeSource:
    def __init__(self, name: str, notices: Optional[list[Notice]] = None, error: Optional[Exception] = None) -> None:
        self.name = name
        self._notices = notices or []
        self._error = error
        self.calls = 0

    async def extract(self) -> list[Notice]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return list(self._notices)


class FakeDownloader:
    """Writes canned bodies per URL; an Exception value is raised instead."""

    def __init__(self, bodies: dict) -> None:
        self.bodies = bodies
        self.requested: list[str] = []

    async def download(self, url: str, destination: str, max_bytes: int) -> int:
        self.requested.append(url)
        body = self.bodies[url]
        if isinstance(body, Exception):
            raise body
        if len(body) > max_bytes:
            raise DownloadTooLarge(url, max_bytes)
        with open(destination, "wb") as handle:
            handle.write(body)
        return len(body)


class FakeRasterizer:
    """Renders ``page_bytes`` per page; indexes in ``failing_pages`` raise."""

    def __init__(self, probe: DocumentProbe, page_bytes: int = 10, failing_pages: Optional[set[int]] = None) -> None:
        self._probe = probe
        self._page_bytes = page_bytes
        self._failing_pages = failing_pages or set()
        self.rendered: list[tuple[int, int, int]] = []

    def probe(self, path: str) -> DocumentProbe:
        return self._probe

    def render_page(self, path: str, page_index: int, width: int, height: int, destination: str) -> str:
        if page_index in self._failing_pages:
            raise RasterizeError(f"page {page_index + 1} is broken")
        with open(destination, "wb") as handle:
            handle.write(b"p" * self._page_bytes)
        self.rendered.append((page_index, width, height))
        return destination


async def no_sleep(seconds: float) -> None:
    return None


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
