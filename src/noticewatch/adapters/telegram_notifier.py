"""Telegram notification adapter backed by a user session.

Formats a Markdown message and sends it, with any attachments, to the target
chat through Telethon. Useful where a bot cannot be added to the channel.
"""

from __future__ import annotations

from telethon import errors

from noticewatch.adapters.notification_formatting import format_message
from noticewatch.core.config import MB
from noticewatch.core.errors import PermanentDeliveryError, TransientDeliveryError
from noticewatch.core.models import ChannelMessage

MESSAGE_LIMIT = 4096
CAPTION_LIMIT = 1024


class TelethonNotifier:
    """Notifier adapter that sends messages through a logged-in Telethon client."""

    max_files_per_message = 10
    max_bytes_per_message = 2000 * MB

    def __init__(self, client, chat, caption_limit: int = CAPTION_LIMIT) -> None:
        self._client = client
        self._chat = chat
        self._caption_limit = caption_limit

    async def send(self, message: ChannelMessage) -> None:
        """Send the formatted notification to the configured chat."""

        try:
            if not message.files:
                text = format_message(message, mode="markdown", limit=MESSAGE_LIMIT)
                await self._client.send_message(self._chat, text, parse_mode="md", link_preview=False)
                return

            caption = format_message(message, mode="markdown", limit=self._caption_limit)
            paths = [item.path for item in message.files]
            await self._client.send_file(
                self._chat,
                paths if len(paths) > 1 else paths[0],
                caption=caption,
                parse_mode="md",
                force_document=not all(item.path.lower().endswith(".png") for item in message.files),
            )
        except errors.FloodWaitError as exc:
            raise TransientDeliveryError(f"Flood wait on send: {exc}", retry_after=exc.seconds) from exc
        except errors.ServerError as exc:
            raise TransientDeliveryError(f"Telegram server error: {exc}") from exc
        except errors.RPCError as exc:
            raise PermanentDeliveryError(f"Telegram rejected the message: {exc}") from exc
        except (ConnectionError, TimeoutError) as exc:
            raise TransientDeliveryError(f"Telegram connection error: {exc}") from exc
