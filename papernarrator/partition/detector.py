"""
DocLayNet layout detection with ultralytics YOLOv8.

The detector runs on page images rendered by :class:`paperdoc.PDFDocument`
and returns regions in pixel space; :mod:`.matcher` maps them back to PDF
points.  Weights live in ``~/.cache/papernarrator`` and are fetched from
HuggingFace the first time they are needed.
"""

import logging
import urllib.request
from pathlib import Path
from typing import List, Optional, Union

from PIL import Image
from tqdm import tqdm
from ultralytics import YOLO

from .models import DOCLAYNET_INDEX_TO_LABEL, LayoutLabel, LayoutRegion

logger = logging.getLogger(__name__)

WEIGHTS_PATH = Path.home() / ".cache" / "papernarrator" / "yolov8x_doclaynet.pt"

# DILHTWD YOLOv8x checkpoint, ~137 MB
WEIGHTS_URL = (
    "https://huggingface.co/DILHTWD/"
    "documentlayoutsegmentation_YOLOv8_ondoclaynet/resolve/main/"
    "yolov8x-doclaynet-epoch64-imgsz640-initiallr1e-4-finallr1e-5.pt"
)

_CHUNK = 1 << 20


def fetch_weights(url: str, dest: Path) -> Path:
    """
    Stream *url* to *dest* through a ``.part`` file.

    The final file only appears once the download is complete, so an
    interrupted download is retried on the next run.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_suffix(dest.suffix + ".part")
    logger.info("Fetching layout weights into %s", dest)
    try:
        with urllib.request.urlopen(url) as response, open(partial, "wb") as out:
            total = int(response.headers.get("Content-Length") or 0) or None
            with tqdm(total=total, unit="B", unit_scale=True, desc=dest.name) as pbar:
                for chunk in iter(lambda: response.read(_CHUNK), b""):
                    out.write(chunk)
                    pbar.update(len(chunk))
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise RuntimeError(f"Could not fetch layout weights from {url}: {e}") from e
    partial.replace(dest)
    return dest


def _label_for(name: str, cls_id: int) -> LayoutLabel:
    """Match on the class name the checkpoint reports; fall back to its index."""
    wanted = name.lower().replace("_", "-")
    for label in DOCLAYNET_INDEX_TO_LABEL.values():
        if label.element_type.lower() == wanted:
            return label
    return DOCLAYNET_INDEX_TO_LABEL.get(cls_id, LayoutLabel.UNKNOWN)


class LayoutDetector:
    """
    Page-image layout regions from a DocLayNet-trained YOLOv8 checkpoint.

    Usage::

        detector = LayoutDetector(device="cpu")
        regions = detector.detect(pdf.render(0, scale=1.5))
    """

    def __init__(
        self,
        model_path: Optional[Union[str, Path]] = None,
        device: Optional[str] = None,
    ):
        weights = Path(model_path) if model_path else WEIGHTS_PATH
        if not weights.exists():
            fetch_weights(WEIGHTS_URL, weights)

        self.model = YOLO(str(weights), task="detect")
        self.device = device
        self.labels = {
            int(cls_id): _label_for(str(name), int(cls_id))
            for cls_id, name in self.model.names.items()
        }
        unmapped = sorted(
            str(self.model.names[c])
            for c, lbl in self.labels.items()
            if lbl is LayoutLabel.UNKNOWN
        )
        if unmapped:
            logger.warning("Layout classes without a DocLayNet label: %s", unmapped)

    def detect(
        self,
        image: Image.Image,
        confidence: float = 0.35,
        iou_threshold: float = 0.45,
        image_size: int = 1024,
    ) -> List[LayoutRegion]:
        """
        Regions on *image*, ordered by their top edge and then left edge.
        """
        results = self.model.predict(
            source=image,
            conf=confidence,
            iou=iou_threshold,
            imgsz=image_size,
            device=self.device,
            verbose=False,
        )
        boxes = results[0].boxes if results else None
        if boxes is None:
            return []

        regions = [
            LayoutRegion(
                label=self.labels.get(int(cls_id), LayoutLabel.UNKNOWN),
                confidence=float(score),
                bbox=tuple(float(v) for v in xyxy),
            )
            for xyxy, score, cls_id in zip(
                boxes.xyxy.tolist(), boxes.conf.tolist(), boxes.cls.tolist()
            )
        ]
        return sorted(regions, key=lambda r: (r.bbox[1], r.bbox[0]))

    def __repr__(self) -> str:
        return f"LayoutDetector({len(self.labels)} classes, device={self.device})"
