"""Error taxonomy shared by the core and adapters.

Adapters translate library exceptions into these types so the core never
depends on httpx, Playwright, Telethon or PyMuPDF specifics.
"""

from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """A page could not be fetched. Terminal for one fetch call."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class FetchTimeout(FetchError):
    pass


class FetchTooSmall(FetchError):
    """The body is below the plausibility threshold (likely an interstitial)."""

    def __init__(self, url: str, length: int) -> None:
        super().__init__(url, f"Response too small: {length} characters")
        self.length = length


class FetchTransport(FetchError):
    pass


class DownloadError(Exception):
    """An attachment could not be staged."""


class DownloadTooLarge(DownloadError):
    def __init__(self, url: str, limit: int) -> None:
        super().__init__(f"File exceeds {limit} bytes: {url}")
        self.url = url
        self.limit = limit


class DownloadFailed(DownloadError):
    pass


class RasterizeError(Exception):
    """A document could not be probed or a page could not be rendered."""


class DeliveryError(Exception):
    """The notification channel rejected a send."""


class TransientDeliveryError(DeliveryError):
    """Timeouts, rate limits and server errors. Safe to retry."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PermanentDeliveryError(DeliveryError):
    """Permission denials and malformed requests. Never retried."""


class DeliveryFailed(Exception):
    """Delivery of one notice gave up. The notice stays unrecorded."""


class RunInProgress(Exception):
    """Another pipeline run holds the lease."""
