from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from form_brand_extraction.errors import HostEnvironmentError, RasterizationFailed
from form_brand_extraction.preprocess import Document, PDFRasterizer

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_render_keeps_page_order(make_pdf) -> None:
    pages = PDFRasterizer().render(make_pdf(3))

    assert [p.index for p in pages] == [0, 1, 2]
    assert all(p.dpi == 150 for p in pages)
    assert all(p.image.startswith(PNG_SIGNATURE) for p in pages)
    widths = [Image.open(BytesIO(p.image)).width for p in pages]
    assert widths == sorted(widths)
    assert len(set(widths)) == 3


def test_render_uses_configured_dpi(make_pdf) -> None:
    low = PDFRasterizer(dpi=72).render(make_pdf(1))[0]
    high = PDFRasterizer(dpi=144).render(make_pdf(1))[0]

    assert Image.open(BytesIO(low.image)).width == 200
    assert Image.open(BytesIO(high.image)).width == 400


@pytest.mark.parametrize("content", [b"", b"definitely not a pdf", b"%PDF-1.7\n%%EOF"])
def test_render_rejects_unreadable_input(content: bytes) -> None:
    with pytest.raises(RasterizationFailed):
        PDFRasterizer().render(content)


class _FlakyRasterizer(PDFRasterizer):
    def __init__(self, failing: set, message: str = "cannot render page"):
        super().__init__()
        self.failing = failing
        self.message = message

    def _render_page(self, doc, page_index: int) -> bytes:
        if page_index in self.failing:
            raise RuntimeError(self.message)
        return super()._render_page(doc, page_index)


def test_failed_page_is_skipped(make_pdf) -> None:
    pages = _FlakyRasterizer(failing={1}).render(make_pdf(3))

    assert [p.index for p in pages] == [0, 2]


def test_all_pages_failing_raises(make_pdf) -> None:
    with pytest.raises(RasterizationFailed, match="Failed to render any pages"):
        _FlakyRasterizer(failing={0, 1}).render(make_pdf(2))


def test_broken_embedded_font_skips_only_that_page(make_pdf) -> None:
    rasterizer = _FlakyRasterizer(failing={0}, message="cannot load font 'Helvetica'")

    pages = rasterizer.render(make_pdf(3))

    assert [p.index for p in pages] == [1, 2]


def test_font_failure_on_every_page_aborts_with_host_error(make_pdf) -> None:
    rasterizer = _FlakyRasterizer(failing={0, 1}, message="FT_New_Memory_Face failed")
    with pytest.raises(HostEnvironmentError) as excinfo:
        rasterizer.render(make_pdf(2))
    assert "environment" in str(excinfo.value)


def test_document_flags() -> None:
    assert Document(b"", "application/pdf").is_empty
    assert Document(b"%PDF", "application/pdf").is_pdf
    assert not Document(b"%PDF", "image/png").is_pdf
