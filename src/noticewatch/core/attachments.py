"""Attachment staging for one notice.

Attachments are handled in order against a single running ``SizeBudget``.
Each problem is contained to its attachment and turned into a note in the
announcement description; the notice itself always continues.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlparse

from noticewatch.core.budget import SizeBudget, format_file_size
from noticewatch.core.config import AttachmentLimits
from noticewatch.core.errors import DownloadError, DownloadTooLarge, RasterizeError
from noticewatch.core.models import Notice, ProcessedAttachments, StagedAttachment
from noticewatch.core.ports import DownloaderPort, ProbeFailed, RasterizerPort
from noticewatch.core.rasterize import plan_rasterization

LOGGER = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "A new notice has been published."
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')


class _BudgetExhausted(Exception):
    pass


class TempFileRegistry:
    """Every file created while processing a notice, for guaranteed removal."""

    def __init__(self) -> None:
        self.paths: List[str] = []

    def track(self, path: str) -> str:
        if path not in self.paths:
            self.paths.append(path)
        return path

    def cleanup(self) -> None:
        for path in self.paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError:
                LOGGER.warning("Error cleaning up temp file: %s", path, exc_info=True)
        self.paths.clear()


def sanitize_file_name(url: str, max_length: int = 100) -> str:
    name = os.path.basename(unquote(urlparse(url).path))
    return _UNSAFE_CHARS.sub("_", name)[:max_length]


def unique_path(directory: str, name: str) -> str:
    candidate = Path(directory) / name
    counter = 1
    while candidate.exists():
        candidate = Path(directory) / f"{Path(name).stem}-{counter}{Path(name).suffix}"
        counter += 1
    return str(candidate)


def is_pdf(path: str, name: str) -> bool:
    if name.lower().endswith(".pdf"):
        return True
    try:
        with open(path, "rb") as handle:
            return handle.read(5) == b"%PDF-"
    except OSError:
        return False


class AttachmentProcessor:
    """Download, rasterize and budget the attachments of one notice."""

    def __init__(
        self,
        downloader: DownloaderPort,
        rasterizer: RasterizerPort,
        limits: AttachmentLimits,
    ) -> None:
        self._downloader = downloader
        self._rasterizer = rasterizer
        self._limits = limits

    async def process(
        self,
        notice: Notice,
        workdir: str,
        temp_files: TempFileRegistry,
    ) -> ProcessedAttachments:
        result = ProcessedAttachments(description=DEFAULT_DESCRIPTION)
        if not notice.attachments:
            return result

        limits = self._limits
        budget = SizeBudget(limits.max_file_bytes, limits.max_notice_bytes, limits.soft_budget_ratio)
        notes: List[str] = []
        total = len(notice.attachments)
        LOGGER.info("Processing %s attachments for %s", total, notice.title)

        for index, url in enumerate(notice.attachments):
            position = index + 1
            try:
                staged = await self._process_one(url, position, workdir, temp_files, budget, notes)
            except _BudgetExhausted:
                omitted = total - index
                LOGGER.warning("Size budget exhausted at attachment %s/%s for %s", position, total, notice.title)
                notes.append(f"{omitted} attachment(s) were omitted because the size limit was reached.")
                break
            except DownloadTooLarge:
                LOGGER.warning("Attachment %s too large: %s", position, url)
                notes.append(
                    f"Could not include attachment {position}: attachment too large "
                    f"(over {format_file_size(limits.max_file_bytes)})."
                )
                continue
            except (DownloadError, OSError) as exc:
                LOGGER.warning("Could not process attachment %s: %s", position, exc)
                notes.append(f"Could not process attachment {position}: {exc}")
                continue
            except Exception as exc:
                LOGGER.exception("Unexpected error processing attachment %s of %s", position, notice.title)
                notes.append(f"Could not process attachment {position}: {exc}")
                continue

            result.files.extend(staged)
            remaining = total - position
            if budget.soft_limit_reached and remaining > 0:
                LOGGER.warning("Approaching size limit, stopping at %s files", len(result.files))
                notes.append(f"{remaining} additional attachment(s) were too large to include.")
                break

        result.description = DEFAULT_DESCRIPTION + "".join(f"\n\n⚠️ {note}" for note in notes)
        return result

    async def _process_one(
        self,
        url: str,
        position: int,
        workdir: str,
        temp_files: TempFileRegistry,
        budget: SizeBudget,
        notes: List[str],
    ) -> List[StagedAttachment]:
        name = sanitize_file_name(url) or f"attachment-{position}"
        path = temp_files.track(unique_path(workdir, name))
        size = await self._downloader.download(url, path, self._limits.max_file_bytes)
        if size > self._limits.max_file_bytes:
            raise DownloadTooLarge(url, self._limits.max_file_bytes)

        original = StagedAttachment(path=path, size_bytes=size, display_name=name)
        if is_pdf(path, name):
            pages = self._rasterize(original, position, workdir, temp_files, budget, notes)
            if pages:
                return pages
            LOGGER.warning("No pages converted for %s. Sending original.", name)

        if not budget.fits(size):
            raise _BudgetExhausted()
        budget.consume(size)
        return [original]

    def _rasterize(
        self,
        original: StagedAttachment,
        position: int,
        workdir: str,
        temp_files: TempFileRegistry,
        budget: SizeBudget,
        notes: List[str],
    ) -> List[StagedAttachment]:
        try:
            probe = self._rasterizer.probe(original.path)
        except RasterizeError as exc:
            probe = ProbeFailed(str(exc))
        if isinstance(probe, ProbeFailed):
            LOGGER.warning("Could not probe %s (%s); rendering up to the page cap", original.display_name, probe.reason)

        plan = plan_rasterization(probe, self._limits)
        LOGGER.info(
            "Rasterizing %s: %s page(s) at %sx%s px",
            original.display_name,
            plan.pages_to_render,
            plan.width,
            plan.height,
        )

        stem = Path(original.display_name).stem or "document"
        pages: List[StagedAttachment] = []
        failed_pages = 0
        stopped_for_size = False
        for page_index in range(plan.pages_to_render):
            destination = temp_files.track(unique_path(workdir, f"{stem}_page{page_index + 1}.png"))
            try:
                rendered = temp_files.track(
                    self._rasterizer.render_page(
                        original.path, page_index, plan.width, plan.height, destination
                    )
                )
            except RasterizeError as exc:
                if not plan.probed:
                    # Without a page count the first failure marks the end of the document.
                    LOGGER.info("Stopped rendering %s at page %s: %s", original.display_name, page_index + 1, exc)
                    break
                LOGGER.warning("Could not convert page %s of %s: %s", page_index + 1, original.display_name, exc)
                failed_pages += 1
                continue

            size = os.path.getsize(rendered)
            if not budget.fits(size):
                LOGGER.warning("Stopping conversion of %s at page %s due to size limit", original.display_name, page_index + 1)
                os.remove(rendered)
                stopped_for_size = True
                break
            budget.consume(size)
            pages.append(StagedAttachment(path=rendered, size_bytes=size, display_name=os.path.basename(rendered)))

        if not pages:
            return pages

        shown = self._page_count_note(plan.total_pages, plan.pages_to_render)
        if shown:
            notes.append(f"Attachment {position}: {shown}")
        if stopped_for_size:
            notes.append(
                f"Attachment {position}: only {len(pages)} page(s) were converted before the size limit was reached."
            )
        if failed_pages:
            notes.append(f"Attachment {position}: {failed_pages} page(s) could not be converted.")
        LOGGER.info("Converted %s pages from %s", len(pages), original.display_name)
        return pages

    @staticmethod
    def _page_count_note(total_pages: Optional[int], rendered: int) -> Optional[str]:
        if total_pages is None or total_pages <= rendered:
            return None
        return f"only the first {rendered} of {total_pages} pages are shown."
