"""Dedup gate (core domain).

A notice link is recorded only after its delivery was confirmed. A crash
between the send and the record can therefore re-announce that notice on
the next run; a failed send never marks a notice as announced.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from noticewatch.core.models import AnnouncedRecord, Notice
from noticewatch.core.ports import StoragePort

LOGGER = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DedupGate:
    """Check-and-record wrapper around the storage port."""

    def __init__(self, storage: StoragePort, clock: Callable[[], datetime] = _utc_now) -> None:
        self._storage = storage
        self._clock = clock

    def is_new(self, link: str) -> bool:
        return not self._storage.has_been_announced(link)

    def record_announced(self, notice: Notice) -> AnnouncedRecord:
        record = AnnouncedRecord(
            link=notice.link,
            title=notice.title,
            date=notice.date,
            announced_at=self._clock(),
        )
        self._storage.record_announced(record)
        LOGGER.info("Recorded %s as announced", notice.link)
        return record
