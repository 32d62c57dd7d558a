"""Application entry point for the noticewatch pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import AsyncIterator, Optional, Union

from art import tprint
from rich.console import Console
from rich.table import Table

from noticewatch import settings
from noticewatch.adapters.browser_fetch import PlaywrightFetchStrategy
from noticewatch.adapters.http_fetch import HttpxDownloader, HttpxFetchStrategy
from noticewatch.adapters.pdf_rasterizer import PyMuPdfRasterizer
from noticewatch.adapters.sqlite_storage import SQLiteStorage
from noticewatch.adapters.telegram_bot_notifier import TelegramBotNotifier
from noticewatch.adapters.telegram_notifier import TelethonNotifier
from noticewatch.adapters.telethon_session import authorize, build_client
from noticewatch.core.attachments import AttachmentProcessor
from noticewatch.core.dedup import DedupGate
from noticewatch.core.delivery import AdminAlerter, DeliveryStage
from noticewatch.core.fetcher import FallbackFetcher
from noticewatch.core.freshness import merge_by_link
from noticewatch.core.models import Notice
from noticewatch.core.ports import NotifierPort
from noticewatch.core.processor import NoticeProcessor, collect_notices
from noticewatch.sources import build_sources

NAME = "NOTICEWATCH"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/noticewatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # httpx logs every request at INFO, which would leak the bot token into URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_fetcher() -> FallbackFetcher:
    return FallbackFetcher(HttpxFetchStrategy(), PlaywrightFetchStrategy(), settings.FETCH)


def _chat_ref(value: str) -> Union[int, str]:
    """Telethon resolves numeric ids and @usernames differently."""

    if value.lstrip("-").isdigit():
        return int(value)
    return value


@asynccontextmanager
async def _notifiers() -> AsyncIterator[tuple[NotifierPort, Optional[NotifierPort]]]:
    """Yield (target, admin) notifiers for the configured method."""

    target_id = settings.TARGET_CHANNEL_ID
    admin_id = settings.ADMIN_CHANNEL_ID

    if settings.NOTIFICATION_METHOD == "bot":
        if not settings.BOT_TOKEN:
            raise RuntimeError("BOT_API is required when notification_method=bot")
        timeout = settings.FETCH.timeout_seconds
        target = TelegramBotNotifier(
            settings.BOT_TOKEN, target_id, timeout_seconds=timeout, caption_limit=settings.CAPTION_LIMIT
        )
        admin = TelegramBotNotifier(settings.BOT_TOKEN, admin_id, timeout_seconds=timeout) if admin_id else None
        yield target, admin
        return

    if settings.NOTIFICATION_METHOD == "telethon":
        client = build_client(settings.API_ID, settings.API_HASH, settings.SESSION_NAME)
        await client.connect()
        try:
            if not await client.is_user_authorized():
                raise RuntimeError("Telegram session is not authorized; run `noticewatch login` first")
            target = TelethonNotifier(client, _chat_ref(target_id), caption_limit=settings.CAPTION_LIMIT)
            admin = TelethonNotifier(client, _chat_ref(admin_id)) if admin_id else None
            yield target, admin
        finally:
            await client.disconnect()
        return

    raise RuntimeError("notification_method must be 'bot' or 'telethon'")


def _build_processor(notifier: NotifierPort, admin: Optional[NotifierPort]) -> NoticeProcessor:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()

    limits = settings.ATTACHMENTS
    downloader = HttpxDownloader(
        timeout_seconds=limits.download_timeout_seconds,
        proxy_url=settings.FETCH.proxy_url,
    )
    alerter = AdminAlerter(admin, secrets=_collect_redaction_values(settings.LOGGING))
    return NoticeProcessor(
        sources=build_sources(settings.SOURCES, _build_fetcher()),
        dedup=DedupGate(storage),
        attachments=AttachmentProcessor(downloader, PyMuPdfRasterizer(), limits),
        delivery=DeliveryStage(notifier, settings.DELIVERY, alerter=alerter),
        config=settings.PIPELINE,
        alerter=alerter,
    )


async def _run_pipeline(periodic: bool) -> None:
    async with _notifiers() as (notifier, admin):
        processor = _build_processor(notifier, admin)
        LOGGER.info(
            "Sources: %s; announced notices so far: %s",
            ", ".join(settings.SOURCES),
            SQLiteStorage(settings.DB_PATH).count_announced(),
        )
        while True:
            await processor.run()
            if not periodic:
                return
            LOGGER.info("Next notice check in %s seconds", settings.INTERVAL_SECONDS)
            await asyncio.sleep(settings.INTERVAL_SECONDS)


def _run(periodic: bool) -> None:
    _print_banner()
    _configure_logging()

    LOGGER.info("Starting noticewatch")
    if not settings.TARGET_CHANNEL_ID:
        LOGGER.warning("TARGET_NOTICE_CHANNEL_ID is not configured; skipping notice checks")
        return

    try:
        asyncio.run(_run_pipeline(periodic))
    except KeyboardInterrupt:
        LOGGER.info("Stopped")


def _print_notices(notices: list[Notice]) -> None:
    table = Table(title=f"{len(notices)} notices")
    table.add_column("Source")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("Attachments", justify="right")
    for notice in notices:
        table.add_row(
            notice.source,
            notice.date,
            f"[link={notice.link}]{notice.title}[/link]",
            str(len(notice.attachments)),
        )
    Console().print(table)


def _scrape(as_json: bool) -> None:
    if not as_json:
        _configure_logging()

    async def _collect() -> list[Notice]:
        notices, failed = await collect_notices(build_sources(settings.SOURCES, _build_fetcher()))
        if failed:
            LOGGER.warning("Sources failed: %s", ", ".join(failed))
        return merge_by_link(notices)

    notices = asyncio.run(_collect())
    if as_json:
        print(json.dumps([notice.to_dict() for notice in notices], ensure_ascii=False, indent=2))
        return
    _print_notices(notices)


def _login() -> None:
    _print_banner()
    _configure_logging()
    client = build_client(settings.API_ID, settings.API_HASH, settings.SESSION_NAME)

    async def _run_login() -> None:
        await client.connect()
        try:
            await authorize(client)
            me = await client.get_me()
            LOGGER.info("Logged in as: %s", me.first_name)
        finally:
            await client.disconnect()

    asyncio.run(_run_login())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="noticewatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Check for notices now and then periodically")
    subparsers.add_parser("once", help="Run a single notice check and exit")
    scrape_parser = subparsers.add_parser("scrape", help="Print the current notices without announcing them")
    scrape_parser.add_argument("--json", action="store_true", help="Print notices as JSON")
    subparsers.add_parser("login", help="Authorize the Telegram user session")

    args = parser.parse_args(argv)
    if args.command == "scrape":
        _scrape(args.json)
        return
    if args.command == "login":
        _login()
        return
    _run(periodic=args.command != "once")


if __name__ == "__main__":
    main()
