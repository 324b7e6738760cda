"""
Raw layout elements produced by a document partitioner.

:class:`LayoutLabel` mirrors the 11 DocLayNet classes emitted by the
YOLO detector; each label also names the raw element type handed to the
retyping stage (``"Section-header"``, ``"Picture"``, ...).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple


class LayoutLabel(Enum):
    """Document layout element types from DocLayNet."""

    CAPTION = 0
    FOOTNOTE = 1
    FORMULA = 2
    LIST_ITEM = 3
    PAGE_FOOTER = 4
    PAGE_HEADER = 5
    PICTURE = 6
    SECTION_HEADER = 7
    TABLE = 8
    TEXT = 9
    TITLE = 10

    # Text blocks no region claimed
    UNKNOWN = -1

    @property
    def element_type(self) -> str:
        if self is LayoutLabel.UNKNOWN:
            return "UncategorizedText"
        return self.name.replace("_", "-").capitalize()


DOCLAYNET_INDEX_TO_LABEL = {label.value: label for label in LayoutLabel if label.value >= 0}

# Regions that own every block they cover instead of matching one by one
CONTAINER_LABELS = (LayoutLabel.PICTURE, LayoutLabel.TABLE)


@dataclass
class LayoutRegion:
    """
    A single region detected by the layout model.

    Coordinates are in **pixel space** of the rendered page image.
    """

    label: LayoutLabel
    confidence: float
    bbox: Tuple[float, float, float, float]  # x0, y0, x1, y1 in pixels

    def scaled(self, scale: float) -> "LayoutRegion":
        """Copy with the bbox divided by *scale* (pixels to PDF points)."""
        x0, y0, x1, y1 = self.bbox
        return LayoutRegion(
            label=self.label,
            confidence=self.confidence,
            bbox=(x0 / scale, y0 / scale, x1 / scale, y1 / scale),
        )

    def __repr__(self) -> str:
        x0, y0, x1, y1 = self.bbox
        return (
            f"LayoutRegion({self.label.name}, "
            f"conf={self.confidence:.2f}, "
            f"bbox=[{x0:.0f},{y0:.0f},{x1:.0f},{y1:.0f}])"
        )


@dataclass
class RawElement:
    """One partitioned element; ``page_number`` is 1-based."""

    type: str
    text: str
    page_number: int
    element_id: str

    def to_prompt_dict(self) -> dict:
        return {"element_id": self.element_id, "type": self.type, "text": self.text}


class DocumentPartitioner(ABC):
    """Splits a PDF into typed raw elements in reading order."""

    @abstractmethod
    def partition(self, file_bytes: bytes, file_name: str) -> List[RawElement]:
        """Return every element of the document, page by page."""
