"""
Turns layout regions and PyMuPDF text blocks into raw elements.

The detector works in pixel space (rendered image) while text blocks are
in PDF point space, so regions are scaled down first.  Matching is the
usual two-pass strategy (IoU, then block overlap); picture and table
regions additionally absorb every block they mostly cover, so a table
becomes one element instead of a run of cell fragments.
"""

from typing import Dict, List, Optional, Tuple

from paperdoc.models import TextBlock

from .models import CONTAINER_LABELS, LayoutLabel, LayoutRegion, RawElement

BBox = Tuple[float, float, float, float]

# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------


def _intersection(a: BBox, b: BBox) -> float:
    x0 = max(a[0], b[0])
    y0 = max(a[1], b[1])
    x1 = min(a[2], b[2])
    y1 = min(a[3], b[3])
    if x1 <= x0 or y1 <= y0:
        return 0.0
    return (x1 - x0) * (y1 - y0)


def _area(bbox: BBox) -> float:
    return max(0, bbox[2] - bbox[0]) * max(0, bbox[3] - bbox[1])


def compute_iou(a: BBox, b: BBox) -> float:
    """Intersection-over-Union between two axis-aligned boxes."""
    inter = _intersection(a, b)
    if inter == 0:
        return 0.0
    union = _area(a) + _area(b) - inter
    return inter / union if union > 0 else 0.0


def compute_overlap_ratio(block_bbox: BBox, region_bbox: BBox) -> float:
    """Fraction of *block_bbox* area covered by *region_bbox*."""
    area = _area(block_bbox)
    return _intersection(block_bbox, region_bbox) / area if area > 0 else 0.0


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def _best_label(
    block: TextBlock,
    regions: List[LayoutRegion],
    iou_threshold: float,
    overlap_threshold: float,
) -> LayoutLabel:
    best_iou, best_overlap = 0.0, 0.0
    by_iou: Optional[LayoutRegion] = None
    by_overlap: Optional[LayoutRegion] = None

    for region in regions:
        iou = compute_iou(block.bbox, region.bbox)
        if iou > best_iou:
            best_iou, by_iou = iou, region
        overlap = compute_overlap_ratio(block.bbox, region.bbox)
        if overlap > best_overlap:
            best_overlap, by_overlap = overlap, region

    if by_iou is not None and best_iou >= iou_threshold:
        return by_iou.label
    if by_overlap is not None and best_overlap >= overlap_threshold:
        return by_overlap.label
    return LayoutLabel.UNKNOWN


def elements_for_page(
    regions: List[LayoutRegion],
    blocks: List[TextBlock],
    scale: float,
    page_number: int,
    iou_threshold: float = 0.1,
    overlap_threshold: float = 0.5,
) -> List[RawElement]:
    """
    Build the raw elements of one page.

    Args:
        regions:           Detected layout regions (pixel coords).
        blocks:            Text blocks of the page (PDF coords).
        scale:             Render scale used to produce the page image.
        page_number:       1-based page number.
        iou_threshold:     Minimum IoU for a match in pass 1.
        overlap_threshold: Minimum block-overlap ratio for pass 2, and for
                           a picture or table region to absorb a block.

    Returns:
        Elements ordered top-to-bottom, left-to-right, with ids
        ``p{page}-e{n}``.
    """
    pdf_regions = [r.scaled(scale) for r in regions]
    containers = [r for r in pdf_regions if r.label in CONTAINER_LABELS]

    absorbed: Dict[int, List[TextBlock]] = {i: [] for i in range(len(containers))}
    entries: List[Tuple[BBox, str, str]] = []

    for block in blocks:
        owner = None
        for i, region in enumerate(containers):
            if compute_overlap_ratio(block.bbox, region.bbox) >= overlap_threshold:
                owner = i
                break
        if owner is not None:
            absorbed[owner].append(block)
            continue

        label = _best_label(block, pdf_regions, iou_threshold, overlap_threshold)
        entries.append((block.bbox, label.element_type, block.text.strip()))

    # Pictures without a text layer still become (empty) elements
    for i, region in enumerate(containers):
        text = "\n".join(b.text.strip() for b in absorbed[i])
        entries.append((region.bbox, region.label.element_type, text))

    entries.sort(key=lambda e: (round(e[0][1], 1), e[0][0]))
    return [
        RawElement(type=etype, text=text, page_number=page_number, element_id=f"p{page_number}-e{n}")
        for n, (_, etype, text) in enumerate(entries)
    ]
