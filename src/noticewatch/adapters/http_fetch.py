"""httpx adapters: the lightweight page strategy and the capped downloader."""

from __future__ import annotations

import logging
import os
from typing import Optional

import httpx

from noticewatch.core.errors import DownloadError, DownloadFailed, DownloadTooLarge, FetchTimeout, FetchTransport
from noticewatch.core.fetcher import USER_AGENTS
from noticewatch.core.ports import FetchRequest

LOGGER = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
        "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.9"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
}


class HttpxFetchStrategy:
    """Plain GET with browser-like headers and an optional proxy."""

    name = "httpx"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def fetch(self, request: FetchRequest) -> str:
        LOGGER.info(
            "[httpx] Fetching %s %s",
            request.url,
            "via proxy" if request.proxy_url else "directly",
        )
        headers = dict(BROWSER_HEADERS, **{"User-Agent": request.user_agent})
        try:
            async with httpx.AsyncClient(
                timeout=request.timeout_seconds,
                follow_redirects=True,
                headers=headers,
                proxy=request.proxy_url,
                transport=self._transport,
            ) as client:
                response = await client.get(request.url)
        except httpx.TimeoutException as exc:
            raise FetchTimeout(request.url, f"Timed out after {request.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise FetchTransport(request.url, str(exc) or type(exc).__name__) from exc
        except (httpx.InvalidURL, ValueError, UnicodeError) as exc:
            # Malformed hrefs and IDNA labels fail before any request is sent.
            raise FetchTransport(request.url, f"Invalid URL: {exc}") from exc

        if not response.is_success:
            LOGGER.error("[httpx] HTTP %s for %s: %s", response.status_code, request.url, response.text[:200])
            raise FetchTransport(request.url, f"HTTP {response.status_code}")
        return response.text


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class HttpxDownloader:
    """Stream a file to disk, aborting as soon as the byte cap is passed.

    The cap is enforced on the bytes actually received; a Content-Length
    header is only used to reject early.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        proxy_url: Optional[str] = None,
        user_agent: str = USER_AGENTS[0],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._proxy_url = proxy_url
        self._user_agent = user_agent
        self._transport = transport

    async def download(self, url: str, destination: str, max_bytes: int) -> int:
        written = 0
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={"User-Agent": self._user_agent},
                proxy=self._proxy_url,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise DownloadFailed(f"HTTP {response.status_code} for {url}")

                    declared = response.headers.get("Content-Length", "")
                    if declared.isdigit() and int(declared) > max_bytes:
                        raise DownloadTooLarge(url, max_bytes)

                    with open(destination, "wb") as handle:
                        async for chunk in response.aiter_bytes():
                            written += len(chunk)
                            if written > max_bytes:
                                raise DownloadTooLarge(url, max_bytes)
                            handle.write(chunk)
        except DownloadError:
            _discard(destination)
            raise
        except httpx.TimeoutException as exc:
            _discard(destination)
            raise DownloadFailed("Download timeout") from exc
        except httpx.HTTPError as exc:
            _discard(destination)
            raise DownloadFailed(str(exc) or type(exc).__name__) from exc
        except (httpx.InvalidURL, ValueError, UnicodeError) as exc:
            _discard(destination)
            raise DownloadFailed(f"Invalid URL {url}: {exc}") from exc

        LOGGER.info("Downloaded %s (%s bytes)", url, written)
        return written
