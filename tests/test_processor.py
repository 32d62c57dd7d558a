from __future__ import annotations

import asyncio
import json
import os
import time
from datetime import datetime, timezone

from fakes import FakeDownloader, FakeNotifier, FakeRasterizer, FakeSource, FakeStorage, no_sleep

from noticewatch.core.attachments import AttachmentProcessor
from noticewatch.core.config import AttachmentLimits, DeliveryConfig, PipelineConfig
from noticewatch.core.dedup import DedupGate
from noticewatch.core.delivery import AdminAlerter, DeliveryStage
from noticewatch.core.errors import TransientDeliveryError
from noticewatch.core.models import Notice
from noticewatch.core.ports import ProbeSucceeded
from noticewatch.core.processor import NoticeProcessor, collect_notices

NOW = datetime(2024, 5, 10, tzinfo=timezone.utc)
PDF = b"%PDF-1.4 three pages"

EXAM_ROUTINE = Notice(
    title="Exam Routine",
    link="http://x/1",
    date="2024-05-01",
    source="IOE Exam Section",
    attachments=("http://x/1.pdf",),
)


def _processor(
    tmp_path,
    sources,
    storage: FakeStorage,
    notifier: FakeNotifier,
    admin: FakeNotifier = None,
    clock=lambda: NOW,
) -> NoticeProcessor:
    alerter = AdminAlerter(admin)
    downloader = FakeDownloader({"http://x/1.pdf": PDF, "http://y/2.pdf": PDF})
    rasterizer = FakeRasterizer(ProbeSucceeded(page_count=3, width_points=595, height_points=842))
    return NoticeProcessor(
        sources=sources,
        dedup=DedupGate(storage),
        attachments=AttachmentProcessor(downloader, rasterizer, AttachmentLimits()),
        delivery=DeliveryStage(
            notifier,
            DeliveryConfig(retry_delay_seconds=0, chunk_delay_seconds=0),
            alerter=alerter,
            sleep=no_sleep,
        ),
        config=PipelineConfig(temp_dir=str(tmp_path / "run"), notice_delay_seconds=0),
        alerter=alerter,
        sleep=no_sleep,
        clock=clock,
    )


def test_new_notice_is_rasterized_sent_once_and_recorded(tmp_path) -> None:
    storage = FakeStorage()
    notifier = FakeNotifier()
    processor = _processor(tmp_path, [FakeSource("ioe", [EXAM_ROUTINE])], storage, notifier)

    summary = asyncio.run(processor.run())

    assert summary.announced == 1
    assert notifier.calls == 1
    assert notifier.sent_file_names == [["1_page1.png", "1_page2.png", "1_page3.png"]]
    assert "http://x/1" in storage.records

    second = asyncio.run(processor.run())

    assert second.announced == 0
    assert second.already_announced == 1
    assert notifier.calls == 1
    assert len(storage.records) == 1


def test_failed_source_does_not_block_others(tmp_path) -> None:
    storage = FakeStorage()
    notifier = FakeNotifier()
    sources = [FakeSource("broken", error=RuntimeError("layout changed")), FakeSource("ioe", [EXAM_ROUTINE])]

    summary = asyncio.run(_processor(tmp_path, sources, storage, notifier).run())

    assert summary.failed_sources == ["broken"]
    assert summary.announced == 1
    assert list(storage.records) == ["http://x/1"]


def test_duplicate_links_across_sources_are_sent_once(tmp_path) -> None:
    storage = FakeStorage()
    notifier = FakeNotifier()
    sources = [FakeSource("a", [EXAM_ROUTINE]), FakeSource("b", [EXAM_ROUTINE])]

    asyncio.run(_processor(tmp_path, sources, storage, notifier).run())

    assert notifier.calls == 1


def test_stale_and_undated_notices_are_not_sent(tmp_path) -> None:
    storage = FakeStorage()
    notifier = FakeNotifier()
    notices = [
        Notice(title="Old", link="http://x/old", date="2023-01-01", source="Test"),
        Notice(title="Undated", link="http://x/undated", date="TBA", source="Test"),
    ]

    summary = asyncio.run(_processor(tmp_path, [FakeSource("s", notices)], storage, notifier).run())

    assert summary.scraped == 2
    assert summary.fresh == 0
    assert notifier.calls == 0


def test_exhausted_delivery_leaves_notice_for_next_run(tmp_path) -> None:
    storage = FakeStorage()
    failing = FakeNotifier(failures=[TransientDeliveryError("timeout")] * 3)
    admin = FakeNotifier()
    sources = [FakeSource("ioe", [EXAM_ROUTINE])]

    summary = asyncio.run(_processor(tmp_path, sources, storage, failing, admin=admin).run())

    assert summary.failed == 1
    assert storage.records == {}
    assert len(admin.sent) == 1

    healthy = FakeNotifier()
    asyncio.run(_processor(tmp_path, sources, storage, healthy).run())

    assert healthy.calls == 1
    assert "http://x/1" in storage.records


def test_temp_directory_is_removed_after_every_run(tmp_path) -> None:
    workdir = tmp_path / "run"
    storage = FakeStorage()

    asyncio.run(_processor(tmp_path, [FakeSource("ioe", [EXAM_ROUTINE])], storage, FakeNotifier()).run())
    assert not workdir.exists()

    failing = FakeNotifier(failures=[TransientDeliveryError("503")] * 3)
    asyncio.run(_processor(tmp_path, [FakeSource("ioe", [EXAM_ROUTINE])], FakeStorage(), failing).run())
    assert not workdir.exists()


def test_critical_error_is_alerted_and_still_cleaned_up(tmp_path) -> None:
    admin = FakeNotifier()

    def broken_clock() -> datetime:
        raise RuntimeError("clock exploded")

    processor = _processor(
        tmp_path,
        [FakeSource("ioe", [EXAM_ROUTINE])],
        FakeStorage(),
        FakeNotifier(),
        admin=admin,
        clock=broken_clock,
    )

    asyncio.run(processor.run())

    assert admin.sent[0].content == "🚨 Bot Alert: Critical notice scraping error: clock exploded"
    assert not (tmp_path / "run").exists()
    assert not os.path.exists(str(tmp_path / "run") + ".lock")


def test_run_is_skipped_while_another_holds_the_lease(tmp_path) -> None:
    lease_path = str(tmp_path / "run") + ".lock"
    with open(lease_path, "w", encoding="utf-8") as handle:
        json.dump({"pid": 1, "started_at": time.time()}, handle)
    source = FakeSource("ioe", [EXAM_ROUTINE])
    notifier = FakeNotifier()

    summary = asyncio.run(_processor(tmp_path, [source], FakeStorage(), notifier).run())

    assert summary.skipped
    assert source.calls == 0
    assert os.path.exists(lease_path)


def test_overlapping_runs_in_one_process_are_skipped(tmp_path) -> None:
    processor = _processor(tmp_path, [FakeSource("ioe", [EXAM_ROUTINE])], FakeStorage(), FakeNotifier())

    async def both():
        return await asyncio.gather(processor.run(), processor.run())

    first, second = asyncio.run(both())

    assert not first.skipped
    assert second.skipped


def test_collect_notices_reports_failures() -> None:
    sources = [FakeSource("ok", [EXAM_ROUTINE]), FakeSource("bad", error=ValueError("boom"))]

    notices, failed = asyncio.run(collect_notices(sources))

    assert notices == [EXAM_ROUTINE]
    assert failed == ["bad"]
