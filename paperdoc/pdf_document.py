"""
PDF document access for the narration pipeline.

Keeps a PyMuPDF document open across page operations: page counting for
input validation, rasterization of every page to PNG for the vision
stages, and plain text blocks for the local partitioner.

Usage::

    with PDFDocument.from_bytes(data, "paper.pdf") as pdf:
        pages = pdf.rasterize(tmp_dir / "pages", scale=2.0)
"""

import logging
from pathlib import Path
from typing import List

import fitz
from PIL import Image

from .models import PageImage, TextBlock

logger = logging.getLogger(__name__)


class PDFOpenError(RuntimeError):
    """Raised when the bytes cannot be opened as a readable PDF."""


class PDFDocument:
    """
    Stateful wrapper around an open ``fitz.Document``.

    Construct with :meth:`from_bytes`, which raises
    :class:`PDFOpenError` for anything PyMuPDF cannot read, encrypted
    documents, and documents without pages.
    """

    def __init__(self, doc: fitz.Document, name: str):
        self.doc = doc
        self.name = name
        self.page_count = doc.page_count

    # -- construction -------------------------------------------------------

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "document.pdf") -> "PDFDocument":
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise PDFOpenError(f"Failed to open PDF '{name}': {e}") from e
        return cls._checked(doc, name)

    @classmethod
    def _checked(cls, doc: fitz.Document, name: str) -> "PDFDocument":
        if doc.needs_pass:
            doc.close()
            raise PDFOpenError(f"PDF '{name}' is password protected")
        if doc.page_count == 0:
            doc.close()
            raise PDFOpenError(f"PDF '{name}' has no pages")
        return cls(doc, name)

    # -- rendering ----------------------------------------------------------

    def render(self, page_index: int, scale: float = 1.5) -> Image.Image:
        """Render *page_index* (0-based) to a PIL RGB image."""
        page = self.doc.load_page(page_index)
        mat = fitz.Matrix(scale, scale)
        pix = page.get_pixmap(matrix=mat, alpha=False)
        return Image.frombytes("RGB", [pix.width, pix.height], pix.samples)

    def rasterize(self, out_dir: Path, scale: float = 2.0) -> List[PageImage]:
        """
        Write every page as ``page_NNN.png`` under *out_dir*.

        Args:
            out_dir: Destination directory (created if missing).
            scale:   Resolution multiplier passed to :meth:`render`.

        Returns:
            One :class:`PageImage` per page, in page order.
        """
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        pages: List[PageImage] = []
        for idx in range(self.page_count):
            img = self.render(idx, scale=scale)
            path = out_dir / f"page_{idx + 1:03d}.png"
            img.save(str(path))
            pages.append(PageImage(idx + 1, path, img.width, img.height))

        logger.debug("Rasterized %d pages of %s to %s", len(pages), self.name, out_dir)
        return pages

    # -- text ---------------------------------------------------------------

    def text_blocks(self, page_index: int) -> List[TextBlock]:
        """Return the non-empty text blocks of *page_index* in reading order."""
        page = self.doc.load_page(page_index)
        blocks: List[TextBlock] = []
        for x0, y0, x1, y1, text, block_no, block_type in page.get_text("blocks", sort=True):
            if block_type != 0 or not text.strip():
                continue
            blocks.append(TextBlock(text=text.strip(), bbox=(x0, y0, x1, y1), block_no=block_no))
        return blocks

    # -- lifecycle ----------------------------------------------------------

    def close(self):
        if self.doc:
            self.doc.close()
            self.doc = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def __repr__(self):
        return f"PDFDocument('{self.name}', pages={self.page_count})"
