"""Notice date parsing, freshness filtering and in-run merging."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from dateutil import parser as date_parser

from noticewatch.core.models import Notice

LOGGER = logging.getLogger(__name__)


def parse_notice_date(value: str) -> Optional[datetime]:
    """Parse a scraped date string into an aware datetime, or None.

    Naive values are taken as UTC.
    """

    if not value or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def merge_by_link(notices: Iterable[Notice]) -> List[Notice]:
    """Drop repeated links, keeping the first occurrence and source order."""

    seen: set[str] = set()
    merged: List[Notice] = []
    for notice in notices:
        if notice.link in seen:
            continue
        seen.add(notice.link)
        merged.append(notice)
    return merged


def filter_fresh(
    notices: Iterable[Notice],
    max_age_days: int,
    now: Optional[datetime] = None,
) -> List[Notice]:
    """Keep notices whose date parses and is at most ``max_age_days`` old."""

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=max_age_days)
    fresh: List[Notice] = []
    for notice in notices:
        parsed = parse_notice_date(notice.date)
        if parsed is None:
            LOGGER.warning("Invalid date format: %s - %r", notice.title, notice.date)
            continue
        if parsed < cutoff:
            continue
        fresh.append(notice)
    return fresh
