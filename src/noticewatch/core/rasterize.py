"""Rasterization policy for multi-page documents.

The probe result is turned into a single plan: how many pages to render,
at which pixel size, and whether a render failure ends the document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from noticewatch.core.config import AttachmentLimits
from noticewatch.core.ports import DocumentProbe, ProbeSucceeded

POINTS_PER_INCH = 72
# A4 at 150 DPI, used when the page geometry is unknown.
DEFAULT_RENDER_SIZE = (1240, 1754)


@dataclass(frozen=True)
class RasterPlan:
    pages_to_render: int
    width: int
    height: int
    total_pages: Optional[int]

    @property
    def probed(self) -> bool:
        return self.total_pages is not None

    @property
    def truncated(self) -> bool:
        return self.total_pages is not None and self.total_pages > self.pages_to_render


def render_geometry(
    width_points: float,
    height_points: float,
    target_dpi: int,
    max_dimension: int,
) -> tuple[int, int]:
    """Scale page points to pixels at ``target_dpi``, clamping the larger side."""

    if width_points <= 0 or height_points <= 0:
        return DEFAULT_RENDER_SIZE

    scale = target_dpi / POINTS_PER_INCH
    width = round(width_points * scale)
    height = round(height_points * scale)

    largest = max(width, height)
    if largest > max_dimension:
        factor = max_dimension / largest
        width = round(width * factor)
        height = round(height * factor)
    return max(1, width), max(1, height)


def plan_rasterization(probe: DocumentProbe, limits: AttachmentLimits) -> RasterPlan:
    if isinstance(probe, ProbeSucceeded):
        width, height = render_geometry(
            probe.width_points,
            probe.height_points,
            limits.target_dpi,
            limits.max_render_dimension,
        )
        return RasterPlan(
            pages_to_render=min(probe.page_count, limits.max_pdf_pages),
            width=width,
            height=height,
            total_pages=probe.page_count,
        )

    width, height = DEFAULT_RENDER_SIZE
    return RasterPlan(
        pages_to_render=limits.max_pdf_pages,
        width=width,
        height=height,
        total_pages=None,
    )
