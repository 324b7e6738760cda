"""
Lightweight page-level records handed from the PDF layer to the
narration pipeline.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


@dataclass(frozen=True)
class PageImage:
    """
    A rasterized page on disk.

    ``page_number`` is 1-based, matching the numbering used by every
    downstream item.
    """

    page_number: int
    path: Path
    width: int
    height: int

    def __repr__(self) -> str:
        return f"PageImage(p{self.page_number}, {self.width}x{self.height}, '{self.path.name}')"


@dataclass
class TextBlock:
    """A PyMuPDF text block in PDF point space."""

    text: str
    bbox: Tuple[float, float, float, float]  # x0, y0, x1, y1
    block_no: int = 0

    @property
    def area(self) -> float:
        x0, y0, x1, y1 = self.bbox
        return max(0, x1 - x0) * max(0, y1 - y0)

    def __repr__(self) -> str:
        preview = self.text[:40].replace("\n", " ")
        return f"TextBlock(#{self.block_no}, '{preview}')"
