from __future__ import annotations

import asyncio
import os

from fakes import FakeDownloader, FakeRasterizer

from noticewatch.core.attachments import (
    DEFAULT_DESCRIPTION,
    AttachmentProcessor,
    TempFileRegistry,
    sanitize_file_name,
    unique_path,
)
from noticewatch.core.config import AttachmentLimits
from noticewatch.core.errors import DownloadFailed
from noticewatch.core.models import Notice
from noticewatch.core.ports import ProbeFailed, ProbeSucceeded

PDF = b"%PDF-1.4 fake document"
A4 = ProbeSucceeded(page_count=3, width_points=595, height_points=842)


def _notice(*attachments: str) -> Notice:
    return Notice(
        title="Exam Routine",
        link="http://x/1",
        date="2024-05-01",
        source="Test",
        attachments=tuple(attachments),
    )


def _process(processor: AttachmentProcessor, notice: Notice, workdir: str):
    registry = TempFileRegistry()
    result = asyncio.run(processor.process(notice, workdir, registry))
    return result, registry


def test_sanitize_file_name() -> None:
    assert sanitize_file_name("http://x/files/exam%20routine.pdf") == "exam routine.pdf"
    assert sanitize_file_name('http://x/a%3Cb%3E%22c%22.pdf') == "a_b__c_.pdf"
    assert len(sanitize_file_name("http://x/" + "a" * 300 + ".pdf")) == 100


def test_unique_path_does_not_overwrite(tmp_path) -> None:
    (tmp_path / "routine.pdf").write_bytes(b"x")
    (tmp_path / "routine-1.pdf").write_bytes(b"x")
    assert unique_path(str(tmp_path), "routine.pdf") == str(tmp_path / "routine-2.pdf")


def test_notice_without_attachments_keeps_default_description(tmp_path) -> None:
    processor = AttachmentProcessor(FakeDownloader({}), FakeRasterizer(A4), AttachmentLimits())
    result, _ = _process(processor, _notice(), str(tmp_path))
    assert result.files == []
    assert result.description == DEFAULT_DESCRIPTION


def test_size_invariant_holds_and_skips_are_described(tmp_path) -> None:
    downloader = FakeDownloader(
        {
            "http://x/a.txt": b"a" * 100,
            "http://x/b.txt": b"b" * 120,
            "http://x/c.txt": b"c" * 90,
            "http://x/d.txt": b"d" * 90,
        }
    )
    limits = AttachmentLimits(max_file_bytes=100, max_notice_bytes=250, soft_budget_ratio=1.0)
    processor = AttachmentProcessor(downloader, FakeRasterizer(A4), limits)

    result, _ = _process(processor, _notice(*downloader.bodies), str(tmp_path))

    assert [item.display_name for item in result.files] == ["a.txt", "c.txt"]
    assert all(item.size_bytes <= limits.max_file_bytes for item in result.files)
    assert result.total_bytes <= limits.max_notice_bytes
    assert "Could not include attachment 2: attachment too large (over 100 Bytes)." in result.description
    assert "1 attachment(s) were omitted because the size limit was reached." in result.description


def test_soft_limit_stops_early(tmp_path) -> None:
    downloader = FakeDownloader({"http://x/a.txt": b"a" * 60, "http://x/b.txt": b"b" * 60, "http://x/c.txt": b"c"})
    limits = AttachmentLimits(max_file_bytes=100, max_notice_bytes=200, soft_budget_ratio=0.5)
    processor = AttachmentProcessor(downloader, FakeRasterizer(A4), limits)

    result, _ = _process(processor, _notice(*downloader.bodies), str(tmp_path))

    assert len(result.files) == 2
    assert "1 additional attachment(s) were too large to include." in result.description
    assert "http://x/c.txt" not in downloader.requested


def test_pdf_pages_replace_the_document(tmp_path) -> None:
    rasterizer = FakeRasterizer(A4)
    processor = AttachmentProcessor(FakeDownloader({"http://x/1.pdf": PDF}), rasterizer, AttachmentLimits())

    result, registry = _process(processor, _notice("http://x/1.pdf"), str(tmp_path))

    assert [item.display_name for item in result.files] == ["1_page1.png", "1_page2.png", "1_page3.png"]
    assert [render[1:] for render in rasterizer.rendered] == [(1240, 1754)] * 3
    assert result.description == DEFAULT_DESCRIPTION

    registry.cleanup()
    assert os.listdir(tmp_path) == []


def test_page_cap_is_noted(tmp_path) -> None:
    rasterizer = FakeRasterizer(ProbeSucceeded(page_count=60, width_points=595, height_points=842))
    limits = AttachmentLimits(max_pdf_pages=5)
    processor = AttachmentProcessor(FakeDownloader({"http://x/1.pdf": PDF}), rasterizer, limits)

    result, _ = _process(processor, _notice("http://x/1.pdf"), str(tmp_path))

    assert len(result.files) == 5
    assert "only the first 5 of 60 pages are shown." in result.description


def test_failed_probe_renders_until_first_failure(tmp_path) -> None:
    rasterizer = FakeRasterizer(ProbeFailed("no page tree"), failing_pages={2, 3})
    processor = AttachmentProcessor(FakeDownloader({"http://x/1.pdf": PDF}), rasterizer, AttachmentLimits())

    result, _ = _process(processor, _notice("http://x/1.pdf"), str(tmp_path))

    assert len(result.files) == 2
    assert [render[0] for render in rasterizer.rendered] == [0, 1]


def test_probed_document_skips_a_broken_page(tmp_path) -> None:
    rasterizer = FakeRasterizer(A4, failing_pages={1})
    processor = AttachmentProcessor(FakeDownloader({"http://x/1.pdf": PDF}), rasterizer, AttachmentLimits())

    result, _ = _process(processor, _notice("http://x/1.pdf"), str(tmp_path))

    assert [item.display_name for item in result.files] == ["1_page1.png", "1_page3.png"]
    assert "Attachment 1: 1 page(s) could not be converted." in result.description


def test_original_is_sent_when_no_page_converts(tmp_path) -> None:
    rasterizer = FakeRasterizer(A4, failing_pages={0, 1, 2})
    processor = AttachmentProcessor(FakeDownloader({"http://x/1.pdf": PDF}), rasterizer, AttachmentLimits())

    result, _ = _process(processor, _notice("http://x/1.pdf"), str(tmp_path))

    assert [item.display_name for item in result.files] == ["1.pdf"]
    assert result.files[0].size_bytes == len(PDF)


def test_rasterized_pages_respect_the_budget(tmp_path) -> None:
    rasterizer = FakeRasterizer(A4, page_bytes=10)
    limits = AttachmentLimits(max_file_bytes=100, max_notice_bytes=25, soft_budget_ratio=1.0)
    processor = AttachmentProcessor(FakeDownloader({"http://x/1.pdf": PDF}), rasterizer, limits)

    result, _ = _process(processor, _notice("http://x/1.pdf"), str(tmp_path))

    assert len(result.files) == 2
    assert result.total_bytes <= 25
    assert "only 2 page(s) were converted before the size limit was reached." in result.description
    assert not (tmp_path / "1_page3.png").exists()


def test_download_error_does_not_stop_siblings(tmp_path) -> None:
    downloader = FakeDownloader(
        {"http://x/a.txt": DownloadFailed("Download timeout"), "http://x/b.txt": b"b" * 10}
    )
    processor = AttachmentProcessor(downloader, FakeRasterizer(A4), AttachmentLimits())

    result, _ = _process(processor, _notice(*downloader.bodies), str(tmp_path))

    assert [item.display_name for item in result.files] == ["b.txt"]
    assert "Could not process attachment 1: Download timeout" in result.description
