"""
Research-paper narration: PDF pages to ordered items to timed audio.
"""

from .errors import ErrorType, NarrationError, RetriesExhaustedError
from .items import Item, ItemArena, ItemType, Label, PlainItem, SpecialItem, TextItem
from .pipeline import NarrationPipeline, NarrationResult, NarratorConfig
from .run import RunDriver
from .status import RunStatus, RunStatusRecorder
from .storage import BlobStore, LocalBlobStore

__all__ = [
    "BlobStore",
    "ErrorType",
    "Item",
    "ItemArena",
    "ItemType",
    "Label",
    "LocalBlobStore",
    "NarrationError",
    "NarrationPipeline",
    "NarrationResult",
    "NarratorConfig",
    "PlainItem",
    "RetriesExhaustedError",
    "RunDriver",
    "RunStatus",
    "RunStatusRecorder",
    "SpecialItem",
    "TextItem",
]
