"""
PDF intake for paper narration.
Opening, validation, page rasterization and raw text blocks.
"""

from .models import PageImage, TextBlock
from .pdf_document import PDFDocument, PDFOpenError

__all__ = [
    "PDFDocument",
    "PDFOpenError",
    "PageImage",
    "TextBlock",
]
