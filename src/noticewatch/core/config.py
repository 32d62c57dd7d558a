"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

MB = 1024 * 1024


@dataclass(frozen=True)
class FetchConfig:
    """Settings for the two-tier page fetcher."""

    retries: int = 3
    timeout_seconds: float = 60.0
    retry_delay_seconds: float = 2.0
    min_content_length: int = 500
    proxy_url: Optional[str] = None


@dataclass(frozen=True)
class AttachmentLimits:
    """Byte and page ceilings enforced while staging attachments."""

    max_file_bytes: int = 25 * MB
    max_notice_bytes: int = 25 * MB
    max_pdf_pages: int = 50
    target_dpi: int = 150
    max_render_dimension: int = 3000
    soft_budget_ratio: float = 0.8
    download_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class DeliveryConfig:
    """Chunking and retry settings for the notification channel."""

    chunk_size: int = 10
    max_batch_bytes: Optional[int] = None
    send_attempts: int = 3
    retry_delay_seconds: float = 2.0
    chunk_delay_seconds: float = 2.0


@dataclass(frozen=True)
class PipelineConfig:
    """Run-level settings consumed by the notice processor."""

    temp_dir: str
    max_notice_age_days: int = 30
    notice_delay_seconds: float = 1.0
    lease_ttl_seconds: float = 2 * 60 * 60
