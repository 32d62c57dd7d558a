"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html

from noticewatch.core.models import ChannelMessage

ELLIPSIS = "…"


def _timestamp(message: ChannelMessage) -> str:
    if message.timestamp is None:
        return ""
    return message.timestamp.strftime("%d-%m-%Y").strip()


def _footer_line(message: ChannelMessage) -> str:
    parts = [part for part in (message.footer, _timestamp(message)) if part]
    return " · ".join(parts)


def _format_markdown(message: ChannelMessage, description: str) -> str:
    """Create the Markdown body used by the Telethon adapter."""

    def escape_md(value: str) -> str:
        for ch in r"*[`_":
            value = value.replace(ch, f"\\{ch}")
        return value

    if message.title is None:
        return escape_md(message.content)

    title = escape_md(message.title)
    lines = [f"**{title}**"]
    if message.url:
        lines.append(message.url)
    if description:
        lines.extend(["", escape_md(description)])
    footer = _footer_line(message)
    if footer:
        lines.extend(["", f"__{escape_md(footer)}__"])
    return "\n".join(lines)


def _format_html(message: ChannelMessage, description: str) -> str:
    """Create the HTML body used by the Bot API adapter."""

    if message.title is None:
        return html.escape(message.content)

    title = html.escape(message.title)
    if message.url:
        safe_link = html.escape(message.url, quote=True)
        parts = [f"<b><a href=\"{safe_link}\">{title}</a></b>"]
    else:
        parts = [f"<b>{title}</b>"]
    if description:
        parts.extend(["", html.escape(description)])
    footer = _footer_line(message)
    if footer:
        parts.extend(["", f"<i>{html.escape(footer)}</i>"])
    return "\n".join(parts)


_FORMATTERS = {
    "markdown": _format_markdown,
    "html": _format_html,
}


def format_message(message: ChannelMessage, mode: str, limit: int) -> str:
    """Return the message formatted for ``mode``, trimming the description to fit ``limit``."""

    formatter = _FORMATTERS.get(mode)
    if formatter is None:
        raise ValueError(f"Unsupported notification format: {mode}")

    description = message.description
    text = formatter(message, description)
    if len(text) <= limit:
        return text

    # Escaping can grow the description, so shrink until the rendered text fits.
    room = limit - len(formatter(message, "")) - len(ELLIPSIS) - 2
    while True:
        trimmed = description[:room].rstrip() + ELLIPSIS if room > 0 else ""
        text = formatter(message, trimmed)
        if len(text) <= limit or room <= 0:
            return text
        room -= len(text) - limit
