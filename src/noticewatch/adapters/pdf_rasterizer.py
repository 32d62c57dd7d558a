"""PyMuPDF adapter for probing and rendering PDF pages."""

from __future__ import annotations

import logging

import fitz

from noticewatch.core.errors import RasterizeError
from noticewatch.core.ports import DocumentProbe, ProbeFailed, ProbeSucceeded

LOGGER = logging.getLogger(__name__)

# PyMuPDF reports broken documents as RuntimeError subclasses (FileDataError).
_PDF_ERRORS = (RuntimeError, ValueError, OSError)


class PyMuPdfRasterizer:
    """Satisfies RasterizerPort. Pages are written as PNG files."""

    def probe(self, path: str) -> DocumentProbe:
        try:
            with fitz.open(path, filetype="pdf") as document:
                if document.page_count == 0:
                    return ProbeFailed("document has no pages")
                first = document[0].rect
                LOGGER.debug(
                    "PDF %s has %s pages, first page %sx%s pts",
                    path,
                    document.page_count,
                    first.width,
                    first.height,
                )
                return ProbeSucceeded(
                    page_count=document.page_count,
                    width_points=first.width,
                    height_points=first.height,
                )
        except _PDF_ERRORS as exc:
            return ProbeFailed(str(exc) or type(exc).__name__)

    def render_page(self, path: str, page_index: int, width: int, height: int, destination: str) -> str:
        """Render one page into a ``width`` x ``height`` box, keeping its aspect ratio."""

        try:
            with fitz.open(path, filetype="pdf") as document:
                if page_index >= document.page_count:
                    raise RasterizeError(f"Page {page_index + 1} does not exist")
                page = document[page_index]
                rect = page.rect
                if rect.width <= 0 or rect.height <= 0:
                    raise RasterizeError(f"Page {page_index + 1} has no area")
                zoom = min(width / rect.width, height / rect.height)
                pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
                pixmap.save(destination)
        except _PDF_ERRORS as exc:
            raise RasterizeError(f"Could not render page {page_index + 1}: {exc}") from exc
        return destination
