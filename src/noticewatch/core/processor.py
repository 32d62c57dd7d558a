"""Core notice processing pipeline.

This module is integration-agnostic. It only relies on ports for sources,
storage and notifications, enabling other adapters without changes here.

One run enforces a strict order:
1) Acquire the run lease (skip the run if another one holds it)
2) Run all sources concurrently; a failing source contributes nothing
3) Merge by link and drop stale or undated notices
4) For each new notice, sequentially: stage attachments, deliver, record
5) Remove the run's temp directory, whatever happened above
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from noticewatch.core.attachments import AttachmentProcessor, TempFileRegistry
from noticewatch.core.config import PipelineConfig
from noticewatch.core.dedup import DedupGate
from noticewatch.core.delivery import AdminAlerter, DeliveryStage, Sleep
from noticewatch.core.errors import DeliveryFailed, RunInProgress
from noticewatch.core.freshness import filter_fresh, merge_by_link
from noticewatch.core.lease import RunLease
from noticewatch.core.models import Notice, RunSummary
from noticewatch.core.ports import NoticeSource

LOGGER = logging.getLogger(__name__)

ANNOUNCED = "announced"
DUPLICATE = "duplicate"
INVALID = "invalid"
FAILED = "failed"


async def collect_notices(sources: Iterable[NoticeSource]) -> Tuple[List[Notice], List[str]]:
    """Run every source concurrently and keep whatever succeeded."""

    sources = list(sources)
    results = await asyncio.gather(*(source.extract() for source in sources), return_exceptions=True)

    notices: List[Notice] = []
    failed: List[str] = []
    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            LOGGER.error("Source %s failed", source.name, exc_info=result)
            failed.append(source.name)
            continue
        LOGGER.info("Source %s returned %s notices", source.name, len(result))
        notices.extend(result)
    return notices, failed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NoticeProcessor:
    """Orchestrates scraping, dedup, attachment staging and delivery."""

    def __init__(
        self,
        sources: Iterable[NoticeSource],
        dedup: DedupGate,
        attachments: AttachmentProcessor,
        delivery: DeliveryStage,
        config: PipelineConfig,
        alerter: Optional[AdminAlerter] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._sources = list(sources)
        self._dedup = dedup
        self._attachments = attachments
        self._delivery = delivery
        self._config = config
        self._alerter = alerter or AdminAlerter(None)
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._lease = RunLease(
            os.path.normpath(config.temp_dir) + ".lock",
            config.lease_ttl_seconds,
        )

    async def run(self) -> RunSummary:
        """Run the pipeline once. Overlapping triggers are skipped, not queued."""

        if self._lock.locked():
            LOGGER.warning("A notice run is already in progress in this process; skipping")
            return RunSummary(skipped=True)

        async with self._lock:
            try:
                self._lease.acquire()
            except RunInProgress as exc:
                LOGGER.warning("Skipping notice run: %s", exc)
                return RunSummary(skipped=True)
            try:
                return await self._run()
            finally:
                self._lease.release()

    async def _run(self) -> RunSummary:
        LOGGER.info("Starting notice check")
        summary = RunSummary()
        workdir = self._config.temp_dir
        try:
            os.makedirs(workdir, exist_ok=True)

            notices, summary.failed_sources = await collect_notices(self._sources)
            summary.scraped = len(notices)
            if not notices:
                LOGGER.info("No notices found or every source returned empty")
                return summary

            candidates = filter_fresh(
                merge_by_link(notices),
                self._config.max_notice_age_days,
                now=self._clock(),
            )
            summary.fresh = len(candidates)
            LOGGER.info("Processing %s recent notices", len(candidates))

            for index, notice in enumerate(candidates):
                outcome = await self._process_notice(notice, workdir)
                if outcome == ANNOUNCED:
                    summary.announced += 1
                elif outcome == DUPLICATE:
                    summary.already_announced += 1
                elif outcome == FAILED:
                    summary.failed += 1

                if outcome in (ANNOUNCED, FAILED) and index < len(candidates) - 1:
                    await self._sleep(self._config.notice_delay_seconds)
        except Exception as exc:
            LOGGER.exception("Critical error during notice checking")
            await self._alerter.alert(f"Critical notice scraping error: {exc}")
        finally:
            self._cleanup_workdir(workdir)

        LOGGER.info(
            "Notice check complete: scraped=%s, fresh=%s, announced=%s, duplicates=%s, failed=%s",
            summary.scraped,
            summary.fresh,
            summary.announced,
            summary.already_announced,
            summary.failed,
        )
        return summary

    async def _process_notice(self, notice: Notice, workdir: str) -> str:
        if not notice.title or not notice.link:
            LOGGER.warning("Invalid notice: missing title or link (%r)", notice)
            return INVALID

        temp_files = TempFileRegistry()
        try:
            if not self._dedup.is_new(notice.link):
                LOGGER.debug("Notice already announced: %s", notice.title)
                return DUPLICATE

            LOGGER.info("Processing new notice: %s", notice.title)
            processed = await self._attachments.process(notice, workdir, temp_files)
            await self._delivery.deliver(notice, processed.files, processed.description)
            # Recorded strictly after a confirmed send.
            self._dedup.record_announced(notice)
            LOGGER.info("Successfully announced notice: %s", notice.title)
            return ANNOUNCED
        except DeliveryFailed:
            LOGGER.error("Notice left unrecorded for the next run: %s", notice.title)
            return FAILED
        except Exception as exc:
            LOGGER.exception("Failed to process notice: %s", notice.title)
            await self._alerter.alert(f'Failed to process notice "{notice.title}": {exc}')
            return FAILED
        finally:
            temp_files.cleanup()

    @staticmethod
    def _cleanup_workdir(workdir: str) -> None:
        try:
            shutil.rmtree(workdir)
        except FileNotFoundError:
            return
        except OSError:
            LOGGER.warning("Error cleaning up temp directory: %s", workdir, exc_info=True)
