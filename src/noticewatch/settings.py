"""Static configuration for noticewatch.

Non-secret knobs (sources, limits, schedule, logging) live in a single JSON
file for quick edits without touching Python. Channel identifiers and secrets
come from the environment (``.env`` is loaded with python-dotenv) and override
the file where both define a value.
"""

from __future__ import annotations

import json
import os
from typing import Any, Optional

from dotenv import load_dotenv

from noticewatch.core.config import AttachmentLimits, DeliveryConfig, FetchConfig, PipelineConfig

load_dotenv()

PROJECT_ROOT = os.getcwd()

# Config path can be pointed elsewhere, e.g. for a container volume.
CONFIG_PATH = os.getenv("NOTICEWATCH_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")

# Values shipped in .env.example that mean "not configured yet".
PLACEHOLDERS = {"YOUR_NOTICE_CHANNEL_ID_HERE", "YOUR_ADMIN_CHANNEL_ID_HERE"}


def _load_json_config(path: str) -> dict:
    """Load config.json; a missing file means built-in defaults."""

    if not os.path.exists(path):
        return {}

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def env_value(name: str) -> Optional[str]:
    """Return a stripped environment value, treating placeholders as unset."""

    value = (os.getenv(name) or "").strip()
    if not value or value in PLACEHOLDERS:
        return None
    return value


def _env_number(name: str, default: Any, cast=int):
    value = env_value(name)
    if value is None:
        return cast(default) if default is not None else None
    try:
        return cast(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {value!r}") from exc


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def enabled_sources(config: dict) -> list[str]:
    """Names of enabled sources; both known sources run when none are listed."""

    raw_sources = config.get("sources")
    if raw_sources is None:
        return ["ioe_exam", "pcampus"]
    names = []
    for entry in raw_sources:
        name = entry.get("name")
        if not name or not entry.get("enabled", True):
            continue
        names.append(name)
    return names


def build_fetch_config(config: dict) -> FetchConfig:
    fetch = config.get("fetch", {})
    defaults = FetchConfig()
    return FetchConfig(
        retries=_env_number("FETCH_RETRIES", fetch.get("retries", defaults.retries)),
        timeout_seconds=_env_number(
            "FETCH_TIMEOUT_SECONDS", fetch.get("timeout_seconds", defaults.timeout_seconds), float
        ),
        retry_delay_seconds=float(fetch.get("retry_delay_seconds", defaults.retry_delay_seconds)),
        min_content_length=int(fetch.get("min_content_length", defaults.min_content_length)),
        proxy_url=env_value("PROXY_URL") or fetch.get("proxy_url"),
    )


def build_attachment_limits(config: dict) -> AttachmentLimits:
    attachments = config.get("attachments", {})
    defaults = AttachmentLimits()
    return AttachmentLimits(
        max_file_bytes=_env_number("MAX_FILE_BYTES", attachments.get("max_file_bytes", defaults.max_file_bytes)),
        max_notice_bytes=_env_number(
            "MAX_NOTICE_BYTES", attachments.get("max_notice_bytes", defaults.max_notice_bytes)
        ),
        max_pdf_pages=int(attachments.get("max_pdf_pages", defaults.max_pdf_pages)),
        target_dpi=int(attachments.get("target_dpi", defaults.target_dpi)),
        max_render_dimension=int(attachments.get("max_render_dimension", defaults.max_render_dimension)),
        soft_budget_ratio=float(attachments.get("soft_budget_ratio", defaults.soft_budget_ratio)),
        download_timeout_seconds=float(
            attachments.get("download_timeout_seconds", defaults.download_timeout_seconds)
        ),
    )


def build_delivery_config(config: dict) -> DeliveryConfig:
    delivery = config.get("delivery", {})
    defaults = DeliveryConfig()
    max_batch_bytes = delivery.get("max_batch_bytes")
    return DeliveryConfig(
        chunk_size=_env_number("ATTACHMENT_CHUNK_SIZE", delivery.get("chunk_size", defaults.chunk_size)),
        max_batch_bytes=int(max_batch_bytes) if max_batch_bytes else None,
        send_attempts=int(delivery.get("send_attempts", defaults.send_attempts)),
        retry_delay_seconds=float(delivery.get("retry_delay_seconds", defaults.retry_delay_seconds)),
        chunk_delay_seconds=float(delivery.get("chunk_delay_seconds", defaults.chunk_delay_seconds)),
    )


def build_pipeline_config(config: dict) -> PipelineConfig:
    storage = config.get("storage", {})
    schedule = config.get("schedule", {})
    delivery = config.get("delivery", {})
    return PipelineConfig(
        temp_dir=_resolve_path(storage.get("temp_dir", "temp_notice_attachments")),
        max_notice_age_days=_env_number("MAX_NOTICE_AGE_DAYS", schedule.get("max_notice_age_days", 30)),
        notice_delay_seconds=float(delivery.get("notice_delay_seconds", 1.0)),
        lease_ttl_seconds=float(schedule.get("lease_ttl_seconds", 2 * 60 * 60)),
    )


_CONFIG = _load_json_config(CONFIG_PATH)

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

SOURCES = enabled_sources(_CONFIG)

FETCH = build_fetch_config(_CONFIG)
ATTACHMENTS = build_attachment_limits(_CONFIG)
DELIVERY = build_delivery_config(_CONFIG)
PIPELINE = build_pipeline_config(_CONFIG)

# Where to store the SQLite database of announced links.
DB_PATH = _resolve_path(_CONFIG.get("storage", {}).get("db_path", "noticewatch.db"))

# The periodic trigger; one run at start-up, then one per interval.
INTERVAL_SECONDS = _env_number(
    "NOTICE_CHECK_INTERVAL_SECONDS", _CONFIG.get("schedule", {}).get("interval_seconds", 30 * 60), float
)

_delivery = _CONFIG.get("delivery", {})
# Notification method switches adapters without changing core logic.
# - "bot": Telegram Bot API (BOT_API token)
# - "telethon": user session (API_ID/API_HASH, see `noticewatch login`)
NOTIFICATION_METHOD = _delivery.get("notification_method", "bot")
CAPTION_LIMIT = int(_delivery.get("caption_limit", 1024))

# Channel identifiers. The admin channel is optional.
TARGET_CHANNEL_ID = env_value("TARGET_NOTICE_CHANNEL_ID")
ADMIN_CHANNEL_ID = env_value("NOTICE_ADMIN_CHANNEL_ID")

BOT_TOKEN = env_value("BOT_API")
API_ID = env_value("API_ID")
API_HASH = env_value("API_HASH")
SESSION_NAME = env_value("SESSION_NAME") or "noticewatch"

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
