"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Notice:
    """One announcement scraped from an external source.

    ``link`` is the only identity: two notices with the same link are the same
    announcement even if the title changed between polls.
    """

    title: str
    link: str
    date: str
    source: str
    attachments: tuple[str, ...] = ()
    id: Optional[str] = None

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["attachments"] = list(self.attachments)
        if self.id is None:
            payload.pop("id")
        return payload


@dataclass(frozen=True)
class AnnouncedRecord:
    """Persisted, append-only marker that a notice link was delivered."""

    link: str
    title: str
    date: str
    announced_at: datetime


@dataclass(frozen=True)
class StagedAttachment:
    """A downloaded or rasterized file waiting to be delivered."""

    path: str
    size_bytes: int
    display_name: str


@dataclass(frozen=True)
class ChannelMessage:
    """Channel-agnostic outgoing message.

    ``title``/``url``/``footer``/``timestamp`` are set for the announcement
    itself; continuation messages only carry ``content`` and ``files``.
    """

    content: str = ""
    title: Optional[str] = None
    url: Optional[str] = None
    description: str = ""
    footer: Optional[str] = None
    timestamp: Optional[datetime] = None
    files: tuple[StagedAttachment, ...] = ()


@dataclass
class ProcessedAttachments:
    """Output of the attachment processor for one notice."""

    files: list[StagedAttachment] = field(default_factory=list)
    description: str = ""

    @property
    def total_bytes(self) -> int:
        return sum(item.size_bytes for item in self.files)


@dataclass
class RunSummary:
    """Counters collected during one pipeline run, mostly for logging."""

    skipped: bool = False
    scraped: int = 0
    fresh: int = 0
    already_announced: int = 0
    announced: int = 0
    failed: int = 0
    failed_sources: list[str] = field(default_factory=list)
