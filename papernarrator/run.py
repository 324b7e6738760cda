"""
Run driver: intake validation, status tracking and artifact upload.

A run is submitted (status ``Received``) and executed separately, so a
caller gets a run id immediately and polls the status record.  Intake
problems are reported with their specific :class:`ErrorType` before any
model call is made; anything else that escapes the pipeline is recorded
as ``CoreSystemFailure`` with a diagnostic JSON artifact.
"""

import json
import logging
import re
import shutil
import tempfile
import traceback
import urllib.error
import urllib.request
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

from paperdoc import PDFDocument, PDFOpenError

from .errors import (
    ErrorType,
    FileNumberOfPagesExceeded,
    FileSizeExceeded,
    InvalidLink,
    InvalidPDFFormat,
    NarrationError,
    SummarizationMethodNotSupported,
)
from .pipeline import NarrationPipeline, NarrationResult, NarratorConfig
from .status import RunStatusRecorder
from .storage import BlobStore

logger = logging.getLogger(__name__)

# "ultimate" is the older name for the same full narration
SUPPORTED_METHODS = ("full", "ultimate")
DOWNLOAD_TIMEOUT = 60

_RE_ARXIV_ABS = re.compile(r"^(https?://(?:www\.)?arxiv\.org)/abs/(.+?)/?$", re.IGNORECASE)
_RE_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


# ------------------------------------------------------------------
# Links and names
# ------------------------------------------------------------------


def normalize_link(link: str) -> str:
    """
    Validate a paper link and point arXiv abstract pages at the PDF.

    Raises:
        InvalidLink: If the link is not an http(s) URL.
    """
    link = (link or "").strip()
    parsed = urlparse(link)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidLink(f"Not an http(s) link: {link!r}")
    match = _RE_ARXIV_ABS.match(link)
    if match:
        return f"{match.group(1)}/pdf/{match.group(2)}"
    return link


def download_pdf(url: str, max_bytes: int) -> bytes:
    """
    Fetch *url* and return its body if it is a PDF.

    Raises:
        InvalidLink: On network failure or a non-PDF body.
        FileSizeExceeded: If the body is larger than *max_bytes*.
    """
    request = urllib.request.Request(url, headers={"User-Agent": "papernarrator/0.1"})
    try:
        with urllib.request.urlopen(request, timeout=DOWNLOAD_TIMEOUT) as response:
            data = response.read(max_bytes + 1)
    except (urllib.error.URLError, ValueError, OSError) as e:
        raise InvalidLink(f"Could not download {url}: {e}") from e

    if len(data) > max_bytes:
        raise FileSizeExceeded(f"{url} is larger than {max_bytes} bytes")
    if not data.startswith(b"%PDF"):
        raise InvalidLink(f"{url} did not return a PDF")
    return data


def clean_name(file_name: str) -> str:
    """Filesystem-safe stem used for every artifact of a run."""
    stem = PurePosixPath(file_name or "").name
    if stem.lower().endswith(".pdf"):
        stem = stem[:-4]
    stem = _RE_UNSAFE.sub("_", stem).strip("._")
    return stem or "paper"


def name_from_link(url: str) -> str:
    return clean_name(PurePosixPath(urlparse(url).path).name)


# ------------------------------------------------------------------
# Driver
# ------------------------------------------------------------------


@dataclass
class RunRequest:
    user: str
    method: str
    file_bytes: Optional[bytes] = None
    file_name: Optional[str] = None
    link: Optional[str] = None


class RunDriver:
    """
    Owns the lifecycle of narration runs.

    The pipeline, blob store and status recorder are constructed once and
    shared by every run.

    Usage::

        driver = RunDriver(pipeline, store)
        status = driver.run(file_bytes=data, file_name="paper.pdf")
        print(status["status"], status.get("audioFileUrl"))
    """

    def __init__(
        self,
        pipeline: NarrationPipeline,
        store: BlobStore,
        recorder: Optional[RunStatusRecorder] = None,
        config: Optional[NarratorConfig] = None,
        fetch: Callable[[str, int], bytes] = download_pdf,
    ):
        self.pipeline = pipeline
        self.store = store
        self.recorder = recorder or RunStatusRecorder(store)
        self.config = config or pipeline.config
        self.fetch = fetch
        self._pending: Dict[str, RunRequest] = {}

    @property
    def max_bytes(self) -> int:
        return self.config.max_file_size_mb * 1024 * 1024

    def submit(
        self,
        file_bytes: Optional[bytes] = None,
        file_name: Optional[str] = None,
        link: Optional[str] = None,
        user: str = "anonymous",
        method: str = "full",
    ) -> str:
        """Record a new run as ``Received`` and return its id."""
        if file_bytes is None and not link:
            raise ValueError("Either file_bytes or link is required")

        run_id = uuid.uuid4().hex
        self._pending[run_id] = RunRequest(
            user=user, method=method, file_bytes=file_bytes, file_name=file_name, link=link
        )
        self.recorder.received(
            run_id,
            user=user,
            method=method,
            fileName=file_name or "",
            link=link or "",
        )
        return run_id

    def run(self, **request) -> Dict:
        """Submit and execute in one call; returns the final status record."""
        return self.execute(self.submit(**request))

    def execute(self, run_id: str) -> Dict:
        """
        Process a submitted run to a terminal status.

        Returns:
            The final status record (``Completed`` or ``Error``).
        """
        request = self._pending.pop(run_id)
        work_dir = Path(tempfile.mkdtemp(prefix="papernarrator-"))
        name = "paper"
        try:
            try:
                file_bytes, name = self._intake(request)
            except NarrationError as e:
                logger.warning("Run %s rejected: %s", run_id, e)
                return self.recorder.failed(run_id, e.error_type, str(e))

            self.recorder.processing(run_id, fileName=name)
            try:
                return self._process(run_id, request.user, name, file_bytes, work_dir)
            except NarrationError as e:
                logger.warning("Run %s failed: %s", run_id, e)
                return self.recorder.failed(run_id, e.error_type, str(e))
            except Exception as e:
                logger.exception("Run %s failed", run_id)
                url = self._write_diagnostic(run_id, request.user, name, e)
                return self.recorder.failed(
                    run_id, ErrorType.CORE_SYSTEM_FAILURE, str(e), diagnosticFileUrl=url
                )
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
            logger.debug("Removed work dir %s", work_dir)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def _intake(self, request: RunRequest):
        """
        Validate a request and return ``(file_bytes, clean_name)``.

        Checks run cheapest first: method, link, size, then page count.
        """
        if request.method not in SUPPORTED_METHODS:
            raise SummarizationMethodNotSupported(
                f"Method {request.method!r} is not supported (use one of {SUPPORTED_METHODS})"
            )

        if request.file_bytes is not None:
            data = request.file_bytes
            name = clean_name(request.file_name or "paper.pdf")
        else:
            url = normalize_link(request.link)
            logger.info("Downloading %s", url)
            data = self.fetch(url, self.max_bytes)
            name = clean_name(request.file_name) if request.file_name else name_from_link(url)

        if len(data) > self.max_bytes:
            raise FileSizeExceeded(
                f"{len(data) / (1024 * 1024):.1f} MB exceeds {self.config.max_file_size_mb} MB"
            )

        try:
            with PDFDocument.from_bytes(data, name) as pdf:
                page_count = pdf.page_count
        except PDFOpenError as e:
            raise InvalidPDFFormat(str(e)) from e

        if page_count > self.config.max_pages:
            raise FileNumberOfPagesExceeded(
                f"{page_count} pages exceeds {self.config.max_pages}"
            )
        return data, name

    # ------------------------------------------------------------------
    # Processing and uploads
    # ------------------------------------------------------------------

    def _process(self, run_id: str, user: str, name: str, file_bytes: bytes, work_dir: Path) -> Dict:
        fmt = self.config.audio_format
        prefix = f"{user}/{name}"

        uploaded_url = self.store.put(f"{prefix}.pdf", file_bytes)
        result: NarrationResult = self.pipeline.narrate(
            file_bytes, f"{name}.pdf", work_dir, work_dir / f"{name}.{fmt}"
        )

        audio_url = self.store.put(f"{prefix}.{fmt}", result.audio_path.read_bytes())
        metadata_url = self.store.put(
            f"{prefix}-metadata.json", json.dumps(result.metadata(), indent=2).encode("utf-8")
        )
        if self.config.save_snapshots:
            for stage, items in self.pipeline.stage_snapshots.items():
                self.store.put(f"{prefix}-{stage}.json", json.dumps(items, indent=2).encode("utf-8"))

        return self.recorder.completed(
            run_id,
            uploadedFileUrl=uploaded_url,
            audioFileUrl=audio_url,
            metadataFileUrl=metadata_url,
            title=result.title,
            authors=result.authors,
            date=result.date,
            duration=result.audio_duration,
        )

    def _write_diagnostic(self, run_id: str, user: str, name: str, error: BaseException) -> str:
        payload = {
            "runId": run_id,
            "error": f"{type(error).__name__}: {error}",
            "traceback": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            "stageSnapshots": self.pipeline.stage_snapshots,
        }
        return self.store.put(
            f"{user}/{name}-error.json", json.dumps(payload, indent=2, default=str).encode("utf-8")
        )
