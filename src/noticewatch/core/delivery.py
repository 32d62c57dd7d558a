"""Delivery stage: chunked, retried sends to the notification channel."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, before_sleep_log, retry_if_exception_type, stop_after_attempt

from noticewatch.core.config import DeliveryConfig
from noticewatch.core.errors import DeliveryFailed, PermanentDeliveryError, TransientDeliveryError
from noticewatch.core.freshness import parse_notice_date
from noticewatch.core.models import ChannelMessage, Notice, StagedAttachment
from noticewatch.core.ports import NotifierPort

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def build_announcement(
    notice: Notice,
    description: str,
    files: Sequence[StagedAttachment] = (),
) -> ChannelMessage:
    """Build the main announcement message for a notice."""

    label = f"Notice {notice.id}" if notice.id else "Notice"
    return ChannelMessage(
        title=f"📢 {label}: {notice.title}",
        url=notice.link,
        description=description,
        footer=f"Source: {notice.source}",
        timestamp=parse_notice_date(notice.date),
        files=tuple(files),
    )


def chunk_attachments(
    files: Sequence[StagedAttachment],
    max_count: int,
    max_bytes: int,
) -> List[List[StagedAttachment]]:
    """Split files into ordered chunks respecting a per-call count and byte ceiling.

    A single file above ``max_bytes`` still gets a chunk of its own.
    """

    chunks: List[List[StagedAttachment]] = []
    current: List[StagedAttachment] = []
    current_bytes = 0
    for item in files:
        if current and (len(current) >= max_count or current_bytes + item.size_bytes > max_bytes):
            chunks.append(current)
            current = []
            current_bytes = 0
        current.append(item)
        current_bytes += item.size_bytes
    if current:
        chunks.append(current)
    return chunks


class AdminAlerter:
    """Best-effort alerts to an optional admin channel.

    Configured secrets are masked in the alert text before it is sent.
    """

    def __init__(self, notifier: Optional[NotifierPort], secrets: Sequence[str] = ()) -> None:
        self._notifier = notifier
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    @property
    def enabled(self) -> bool:
        return self._notifier is not None

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, "***")
        return text

    async def alert(self, text: str) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.send(ChannelMessage(content=f"🚨 Bot Alert: {self.redact(text)}"))
        except Exception:
            LOGGER.warning("Failed to send admin alert", exc_info=True)


class DeliveryStage:
    """Send one announcement plus its attachments, or raise ``DeliveryFailed``."""

    def __init__(
        self,
        notifier: NotifierPort,
        config: DeliveryConfig,
        alerter: Optional[AdminAlerter] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._notifier = notifier
        self._config = config
        self._alerter = alerter or AdminAlerter(None)
        self._sleep = sleep

    def _backoff(self, retry_state: RetryCallState) -> float:
        delay = self._config.retry_delay_seconds * (2 ** (retry_state.attempt_number - 1))
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None) or 0
        return max(delay, retry_after)

    async def send_with_retry(self, message: ChannelMessage) -> None:
        """Send with exponential backoff on transient errors only."""

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._config.send_attempts)),
            wait=self._backoff,
            retry=retry_if_exception_type(TransientDeliveryError),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._notifier.send(message)

    async def deliver(
        self,
        notice: Notice,
        attachments: Sequence[StagedAttachment],
        description: str,
    ) -> None:
        try:
            await self._deliver(notice, attachments, description)
        except (TransientDeliveryError, PermanentDeliveryError) as exc:
            LOGGER.error("Delivery failed for %s: %s", notice.title, exc)
            await self._alerter.alert(f'Failed to deliver notice "{notice.title}": {exc}')
            raise DeliveryFailed(f"Could not deliver {notice.link}: {exc}") from exc

    async def _deliver(
        self,
        notice: Notice,
        attachments: Sequence[StagedAttachment],
        description: str,
    ) -> None:
        if not attachments:
            await self.send_with_retry(build_announcement(notice, description))
            LOGGER.info("Sent notice without attachments: %s", notice.title)
            return

        max_count = max(1, min(self._config.chunk_size, self._notifier.max_files_per_message))
        max_bytes = self._notifier.max_bytes_per_message
        if self._config.max_batch_bytes:
            max_bytes = min(max_bytes, self._config.max_batch_bytes)
        chunks = chunk_attachments(attachments, max_count, max_bytes)
        total = len(chunks)
        for number, chunk in enumerate(chunks, start=1):
            if number == 1:
                message = build_announcement(notice, description, chunk)
            else:
                message = ChannelMessage(
                    content=f'📎 Additional attachments for "{notice.title}" ({number}/{total})',
                    files=tuple(chunk),
                )
            await self.send_with_retry(message)
            LOGGER.info("Sent chunk %s/%s (%s files) for %s", number, total, len(chunk), notice.title)
            if number < total:
                await self._sleep(self._config.chunk_delay_seconds)
