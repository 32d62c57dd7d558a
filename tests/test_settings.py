from __future__ import annotations

import pytest

from noticewatch import settings


def test_placeholder_channel_is_unset(monkeypatch) -> None:
    monkeypatch.setenv("TARGET_NOTICE_CHANNEL_ID", "YOUR_NOTICE_CHANNEL_ID_HERE")
    assert settings.env_value("TARGET_NOTICE_CHANNEL_ID") is None

    monkeypatch.setenv("TARGET_NOTICE_CHANNEL_ID", " -100123 ")
    assert settings.env_value("TARGET_NOTICE_CHANNEL_ID") == "-100123"


def test_environment_overrides_file_values(monkeypatch) -> None:
    monkeypatch.setenv("MAX_NOTICE_AGE_DAYS", "7")
    monkeypatch.setenv("MAX_FILE_BYTES", "1000")
    monkeypatch.setenv("PROXY_URL", "http://proxy:8080")
    monkeypatch.delenv("FETCH_RETRIES", raising=False)
    config = {
        "fetch": {"retries": 5},
        "attachments": {"max_file_bytes": 5000, "max_pdf_pages": 10},
        "schedule": {"max_notice_age_days": 30},
        "storage": {"temp_dir": "/tmp/noticewatch-run"},
    }

    fetch = settings.build_fetch_config(config)
    limits = settings.build_attachment_limits(config)
    pipeline = settings.build_pipeline_config(config)

    assert fetch.retries == 5
    assert fetch.proxy_url == "http://proxy:8080"
    assert limits.max_file_bytes == 1000
    assert limits.max_pdf_pages == 10
    assert pipeline.max_notice_age_days == 7
    assert pipeline.temp_dir == "/tmp/noticewatch-run"


def test_invalid_number_is_reported(monkeypatch) -> None:
    monkeypatch.setenv("ATTACHMENT_CHUNK_SIZE", "ten")
    with pytest.raises(RuntimeError):
        settings.build_delivery_config({})


def test_enabled_sources() -> None:
    assert settings.enabled_sources({}) == ["ioe_exam", "pcampus"]
    config = {"sources": [{"name": "ioe_exam", "enabled": False}, {"name": "pcampus"}]}
    assert settings.enabled_sources(config) == ["pcampus"]
