"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, fetching, document rendering
and notification adapters so that the core can be reused with different
backends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Union

from noticewatch.core.models import AnnouncedRecord, ChannelMessage, Notice


@dataclass(frozen=True)
class FetchRequest:
    """Per-call fetch settings. Built fresh for every ``fetch`` call."""

    url: str
    user_agent: str
    timeout_seconds: float
    proxy_url: Optional[str] = None


@dataclass(frozen=True)
class ProbeSucceeded:
    page_count: int
    width_points: float
    height_points: float


@dataclass(frozen=True)
class ProbeFailed:
    reason: str


DocumentProbe = Union[ProbeSucceeded, ProbeFailed]


class StoragePort(Protocol):
    """Storage operations required by the dedup gate."""

    def has_been_announced(self, link: str) -> bool:
        ...

    def record_announced(self, record: AnnouncedRecord) -> None:
        ...


class FetchStrategy(Protocol):
    """One way of turning a URL into an HTML string."""

    name: str

    async def fetch(self, request: FetchRequest) -> str:
        ...


class PageFetcher(Protocol):
    """What extractors depend on: a URL in, a page body out."""

    async def fetch(self, url: str) -> str:
        ...


class DownloaderPort(Protocol):
    """Streams a remote file to disk, aborting once ``max_bytes`` is passed."""

    async def download(self, url: str, destination: str, max_bytes: int) -> int:
        ...


class RasterizerPort(Protocol):
    """Renders pages of a multi-page document to images."""

    def probe(self, path: str) -> DocumentProbe:
        ...

    def render_page(self, path: str, page_index: int, width: int, height: int, destination: str) -> str:
        ...


class NoticeSource(Protocol):
    """A single site extractor."""

    name: str

    async def extract(self) -> list[Notice]:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the delivery stage."""

    max_files_per_message: int
    max_bytes_per_message: int

    async def send(self, message: ChannelMessage) -> None:
        ...
