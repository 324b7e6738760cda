"""
Blob storage for run artifacts (source PDF, audio, metadata, status).
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Key-value store of bytes addressed by slash-separated paths."""

    @abstractmethod
    def put(self, path: str, data: bytes) -> str:
        """Store *data* at *path* and return a URL for it."""

    @abstractmethod
    def get(self, path: str) -> Optional[bytes]:
        """Return the bytes at *path*, or ``None`` if absent."""


class LocalBlobStore(BlobStore):
    """
    Filesystem-backed store rooted at a directory.

    Usage::

        store = LocalBlobStore("output")
        url = store.put("anonymous/paper.mp3", audio_bytes)
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        if self.root not in target.parents and target != self.root:
            raise ValueError(f"Blob path escapes the store root: {path}")
        return target

    def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), target)
        return target.as_uri()

    def get(self, path: str) -> Optional[bytes]:
        target = self._resolve(path)
        return target.read_bytes() if target.exists() else None

    def __repr__(self) -> str:
        return f"LocalBlobStore(root={self.root})"
