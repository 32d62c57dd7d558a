"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so announcements can be posted by a bot into a
channel or group. Image-only batches are sent as photos so pages render
inline; anything else goes out as documents.
"""

from __future__ import annotations

import json
from contextlib import ExitStack
from typing import Optional

import httpx

from noticewatch.adapters.notification_formatting import format_message
from noticewatch.core.config import MB
from noticewatch.core.errors import PermanentDeliveryError, TransientDeliveryError
from noticewatch.core.models import ChannelMessage, StagedAttachment

MESSAGE_LIMIT = 4096
CAPTION_LIMIT = 1024
PHOTO_MAX_BYTES = 10 * MB
_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")


def _is_photo_batch(files: tuple[StagedAttachment, ...]) -> bool:
    return all(
        item.display_name.lower().endswith(_IMAGE_SUFFIXES) and item.size_bytes <= PHOTO_MAX_BYTES
        for item in files
    )


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    max_files_per_message = 10
    max_bytes_per_message = 50 * MB

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout_seconds: float = 60.0,
        caption_limit: int = CAPTION_LIMIT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout_seconds
        self._caption_limit = caption_limit
        self._transport = transport

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/{method}"

    async def send(self, message: ChannelMessage) -> None:
        """Send the formatted message, raising a DeliveryError subclass on failure."""

        files = message.files
        if not files:
            text = format_message(message, mode="html", limit=MESSAGE_LIMIT)
            await self._call(
                "sendMessage",
                data={
                    "chat_id": self._chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": "true",
                },
            )
            return

        caption = format_message(message, mode="html", limit=self._caption_limit)
        media_type = "photo" if _is_photo_batch(files) else "document"
        with ExitStack() as stack:
            uploads = {
                f"file{index}": (item.display_name, stack.enter_context(open(item.path, "rb")))
                for index, item in enumerate(files)
            }
            if len(files) == 1:
                method = "sendPhoto" if media_type == "photo" else "sendDocument"
                await self._call(
                    method,
                    data={"chat_id": self._chat_id, "caption": caption, "parse_mode": "HTML"},
                    files={media_type: uploads["file0"]},
                )
                return

            media = []
            for index in range(len(files)):
                entry = {"type": media_type, "media": f"attach://file{index}"}
                if index == 0:
                    entry.update(caption=caption, parse_mode="HTML")
                media.append(entry)
            await self._call(
                "sendMediaGroup",
                data={"chat_id": self._chat_id, "media": json.dumps(media)},
                files=uploads,
            )

    async def _call(self, method: str, data: dict, files: Optional[dict] = None) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._endpoint(method), data=data, files=files)
        except httpx.TimeoutException as exc:
            raise TransientDeliveryError(f"Bot API {method} timed out") from exc
        except httpx.TransportError as exc:
            raise TransientDeliveryError(f"Bot API {method} network error: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {"description": response.text[:200]}

        if response.is_success and payload.get("ok", True):
            return payload

        status = payload.get("error_code") or response.status_code
        description = payload.get("description", "")
        error = f"Bot API error {status} on {method}: {description}"
        if status == 429 or status >= 500:
            retry_after = (payload.get("parameters") or {}).get("retry_after")
            raise TransientDeliveryError(error, retry_after=retry_after)
        raise PermanentDeliveryError(error)
