"""Site extractors, registered by name for configuration."""

from __future__ import annotations

from typing import Iterable

from noticewatch.core.ports import PageFetcher
from noticewatch.sources.base import NoticeExtractor
from noticewatch.sources.ioe_exam import IoeExamExtractor
from noticewatch.sources.pcampus import PcampusExtractor

SOURCE_TYPES: dict[str, type[NoticeExtractor]] = {
    IoeExamExtractor.name: IoeExamExtractor,
    PcampusExtractor.name: PcampusExtractor,
}


def build_sources(names: Iterable[str], fetcher: PageFetcher) -> list[NoticeExtractor]:
    """Instantiate the named extractors, rejecting unknown names."""

    sources = []
    for name in names:
        source_type = SOURCE_TYPES.get(name)
        if source_type is None:
            raise ValueError(f"Unknown notice source: {name}")
        sources.append(source_type(fetcher))
    return sources
