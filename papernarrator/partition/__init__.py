"""Layout partitioning of PDFs into raw typed elements."""

from .layout import LayoutPartitioner
from .matcher import compute_iou, elements_for_page
from .models import DocumentPartitioner, LayoutLabel, LayoutRegion, RawElement

__all__ = [
    "DocumentPartitioner",
    "LayoutLabel",
    "LayoutPartitioner",
    "LayoutRegion",
    "RawElement",
    "compute_iou",
    "elements_for_page",
]
