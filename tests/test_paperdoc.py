from __future__ import annotations

import pytest

from paperdoc import PDFDocument, PDFOpenError


def test_rasterize_writes_one_numbered_png_per_page(pdf_factory, tmp_path) -> None:
    with PDFDocument.from_bytes(pdf_factory("First page", "Second page"), "paper.pdf") as pdf:
        pages = pdf.rasterize(tmp_path / "pages", scale=1.0)

    assert [p.page_number for p in pages] == [1, 2]
    assert [p.path.name for p in pages] == ["page_001.png", "page_002.png"]
    assert all(p.path.exists() for p in pages)
    assert (pages[0].width, pages[0].height) == (595, 842)


def test_text_blocks_carry_page_text(pdf_factory) -> None:
    with PDFDocument.from_bytes(pdf_factory("Results and references")) as pdf:
        blocks = pdf.text_blocks(0)

    assert [b.text for b in blocks] == ["Results and references"]
    assert blocks[0].area > 0


def test_unreadable_bytes_raise_open_error() -> None:
    with pytest.raises(PDFOpenError):
        PDFDocument.from_bytes(b"not a pdf at all", "broken.pdf")
