from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import List, Optional

import fitz  # PyMuPDF
from PIL import Image

from .errors import HostEnvironmentError, RasterizationFailed

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"

# Substrings MuPDF uses for font/glyph failures.
_HOST_FAILURE_MARKERS = ("font", "glyph", "freetype")


@dataclass(frozen=True)
class Document:
    """Uploaded document content as received."""

    content: bytes
    media_type: str
    name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.content

    @property
    def is_pdf(self) -> bool:
        return self.media_type == PDF_MEDIA_TYPE


@dataclass(frozen=True)
class RenderedPage:
    """One page rendered to a lossless PNG."""

    image: bytes
    index: int
    dpi: int


def _is_host_failure(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _HOST_FAILURE_MARKERS)


@dataclass
class PDFRasterizer:
    """
    Renders every page of a PDF to PNG at a fixed resolution.

    Pages that fail to render are skipped; a document that yields no pages at all
    raises RasterizationFailed, or HostEnvironmentError when every page failed
    inside the font/glyph machinery.
    """

    dpi: int = 150

    def render(self, content: bytes) -> List[RenderedPage]:
        try:
            doc = fitz.open(stream=content, filetype="pdf")
        except Exception as exc:
            if _is_host_failure(exc):
                raise HostEnvironmentError(
                    "PDF rendering failed because the host font system could not be "
                    "initialised. This is a server configuration problem, not a problem "
                    "with the document; retry after the fonts are repaired."
                ) from exc
            raise RasterizationFailed(f"Could not open PDF: {exc}") from exc

        pages: List[RenderedPage] = []
        font_failures: List[Exception] = []
        with doc:
            page_count = doc.page_count
            logger.info("PDF has %s pages", page_count)
            for page_index in range(page_count):
                logger.debug("Rendering page %s", page_index + 1)
                try:
                    png = self._render_page(doc, page_index)
                except Exception as exc:
                    if _is_host_failure(exc):
                        font_failures.append(exc)
                    logger.error(
                        "Failed to render page %s - continuing with remaining pages",
                        page_index + 1,
                        exc_info=True,
                    )
                    continue
                pages.append(RenderedPage(image=png, index=page_index, dpi=self.dpi))

        if not pages:
            # A broken embedded font fails one page; the same failure on every
            # page means the renderer's own font machinery is unusable.
            if page_count and len(font_failures) == page_count:
                logger.error("Font subsystem failure on all %s pages", page_count)
                raise HostEnvironmentError(
                    "PDF rendering failed due to a host font/glyph error on every page. "
                    "The document may be fine; the rendering environment needs repair."
                ) from font_failures[-1]
            raise RasterizationFailed("Failed to render any pages from PDF")

        logger.info("Rendered %s pages at %s dpi", len(pages), self.dpi)
        return pages

    def _render_page(self, doc: "fitz.Document", page_index: int) -> bytes:
        page = doc.load_page(page_index)
        pix = page.get_pixmap(dpi=self.dpi, alpha=False)
        img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
        buffer = BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()
