"""Rendered-page strategy using a headless Chromium via Playwright."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import unquote, urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from noticewatch.core.errors import FetchTimeout, FetchTransport
from noticewatch.core.ports import FetchRequest

LOGGER = logging.getLogger(__name__)


def _proxy_settings(proxy_url: Optional[str]) -> Optional[dict]:
    """Split a proxy URL into Playwright's server/credential fields."""

    if not proxy_url:
        return None
    parsed = urlparse(proxy_url)
    server = f"{parsed.scheme}://{parsed.hostname}"
    if parsed.port:
        server = f"{server}:{parsed.port}"
    settings = {"server": server}
    if parsed.username:
        settings["username"] = unquote(parsed.username)
        settings["password"] = unquote(parsed.password or "")
    return settings


class PlaywrightFetchStrategy:
    """Load the page in a real browser, wait for network idle, return the DOM."""

    name = "playwright"

    async def fetch(self, request: FetchRequest) -> str:
        LOGGER.info("[playwright] Rendering %s", request.url)
        launch_options: dict = {
            "headless": True,
            "args": ["--no-sandbox", "--disable-setuid-sandbox"],
        }
        proxy = _proxy_settings(request.proxy_url)
        if proxy:
            launch_options["proxy"] = proxy

        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(**launch_options)
                try:
                    context = await browser.new_context(user_agent=request.user_agent)
                    page = await context.new_page()
                    await page.goto(
                        request.url,
                        wait_until="networkidle",
                        timeout=request.timeout_seconds * 1000,
                    )
                    return await page.content()
                finally:
                    await browser.close()
        except PlaywrightTimeoutError as exc:
            raise FetchTimeout(request.url, f"Rendering timed out: {exc}") from exc
        except PlaywrightError as exc:
            raise FetchTransport(request.url, f"Rendering failed: {exc}") from exc
