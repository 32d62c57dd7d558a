"""Two-tier page fetching policy.

The policy tries the lightweight strategy a few times with an escalating
delay, then falls back exactly once to the rendering strategy. Every call
builds its own ``FetchRequest``; nothing is cached between calls.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, Optional, Sequence

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from noticewatch.core.config import FetchConfig
from noticewatch.core.errors import FetchError, FetchTooSmall
from noticewatch.core.ports import FetchRequest, FetchStrategy

LOGGER = logging.getLogger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/109.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/109.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:127.0) Gecko/20100101 Firefox/127.0",
)


class FallbackFetcher:
    """Fetch a page with ``primary`` first and ``fallback`` as a last resort."""

    def __init__(
        self,
        primary: FetchStrategy,
        fallback: Optional[FetchStrategy],
        config: FetchConfig,
        user_agents: Sequence[str] = USER_AGENTS,
        choose: Callable[[Sequence[str]], str] = random.choice,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._config = config
        self._user_agents = user_agents
        self._choose = choose

    def _build_request(self, url: str) -> FetchRequest:
        return FetchRequest(
            url=url,
            user_agent=self._choose(self._user_agents),
            timeout_seconds=self._config.timeout_seconds,
            proxy_url=self._config.proxy_url,
        )

    async def _attempt(self, strategy: FetchStrategy, request: FetchRequest) -> str:
        body = await strategy.fetch(request)
        length = len(body or "")
        if length < self._config.min_content_length:
            LOGGER.warning(
                "[%s] Body for %s is too small (%s chars)", strategy.name, request.url, length
            )
            raise FetchTooSmall(request.url, length)
        LOGGER.info("[%s] Fetched %s (%s chars)", strategy.name, request.url, length)
        return body

    async def fetch(self, url: str) -> str:
        """Return the page body or raise a ``FetchError`` subclass."""

        request = self._build_request(url)
        delay = self._config.retry_delay_seconds
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._config.retries)),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_exception_type(FetchError),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(self._primary, request)
        except FetchError as exc:
            if self._fallback is None:
                raise
            LOGGER.warning(
                "[%s] All %s attempts failed for %s (%s); trying %s",
                self._primary.name,
                self._config.retries,
                url,
                exc,
                self._fallback.name,
            )

        return await self._attempt(self._fallback, request)
