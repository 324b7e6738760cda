"""
Local document partitioner: YOLO layout regions matched to PyMuPDF text.
"""

import logging
import time
from typing import List, Optional

from paperdoc import PDFDocument

from .matcher import elements_for_page
from .models import DocumentPartitioner, RawElement

logger = logging.getLogger(__name__)


class LayoutPartitioner(DocumentPartitioner):
    """
    Partitions a PDF page by page.

    The detector is loaded on first use, so constructing the partitioner
    is cheap and a test can inject any object with a ``detect(image,
    confidence=...)`` method.
    """

    def __init__(
        self,
        detector=None,
        model_path: Optional[str] = None,
        device: Optional[str] = None,
        scale: float = 1.5,
        confidence: float = 0.35,
    ):
        self._detector = detector
        self.model_path = model_path
        self.device = device
        self.scale = scale
        self.confidence = confidence

    def _ensure_detector(self):
        if self._detector is None:
            from .detector import LayoutDetector

            logger.info("Loading layout detector...")
            self._detector = LayoutDetector(model_path=self.model_path, device=self.device)
        return self._detector

    def partition(self, file_bytes: bytes, file_name: str) -> List[RawElement]:
        detector = self._ensure_detector()
        t0 = time.perf_counter()
        elements: List[RawElement] = []

        with PDFDocument.from_bytes(file_bytes, file_name) as pdf:
            for index in range(pdf.page_count):
                image = pdf.render(index, scale=self.scale)
                regions = detector.detect(image, confidence=self.confidence)
                elements.extend(
                    elements_for_page(regions, pdf.text_blocks(index), self.scale, index + 1)
                )

        logger.info(
            "Partitioned %s into %d elements in %.1fs",
            file_name,
            len(elements),
            time.perf_counter() - t0,
        )
        return elements
