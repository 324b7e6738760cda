"""
Narration pipeline orchestrator: PDF -> items -> narration script -> audio.

Coordinates the full workflow over one ordered list of items:

1. **Rasterization** - render every page to PNG in the run's work dir.
2. **Relevance** (optional) - drop cover and boilerplate pages.
3. **Extraction** - page images to typed items, either straight from the
   vision model or from layout partitioning plus model retyping.
4. **Summaries** - label and summarize figures, tables and code, then
   merge items sharing a label; extract title, authors and date.
5. **Filtering** - mark the references section, insert the end marker,
   and drop everything that should not be read aloud.
6. **Cleanup** - tag items, then remove citations, verbalize math,
   repair hyphenation and expand abbreviations.
7. **Ordering** - move figures, tables and code next to their first
   mention and add pause cues.
8. **Synthesis & export** - speak every item, time the segments, and
   export the normalized track.

Usage::

    from papernarrator.pipeline import NarrationPipeline, NarratorConfig

    pipeline = NarrationPipeline(NarratorConfig(extraction_source="vision"))
    result = pipeline.narrate(pdf_bytes, "paper.pdf", work_dir, "paper.mp3")
    print(result.summary())
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from paperdoc import PageImage, PDFDocument, PDFOpenError

from .errors import InvalidPDFFormat
from .extraction import (
    PaperMetadata,
    apply_author_info,
    extract_pages,
    extract_title_and_authors,
    merge_duplicate_labels,
    retype_elements,
    select_relevant_pages,
    summarize_special_items,
)
from .extraction.authors import NO_TITLE
from .items import Item, snapshot
from .llm import CompletionBackend, FewShotExample, OpenAICompletionBackend, load_few_shot_examples
from .llm.backend import DEFAULT_MODEL
from .partition import DocumentPartitioner, LayoutPartitioner
from .script import (
    add_pause_cues,
    filter_items,
    mark_reference_sections,
    remove_citations,
    repair_hyphenation,
    replace_known_abbreviations,
    reposition_special_items,
    tag_cut_offs,
    tag_items,
    verbalize_math,
)
from .tts import (
    DEFAULT_NARRATION_VOICE,
    DEFAULT_SUMMARY_VOICE,
    AudioBuilder,
    AudioSegmentMeta,
    BaseTTSEngine,
    KokoroEngine,
    synthesize_items,
    table_of_contents,
)

logger = logging.getLogger(__name__)

EXTRACTION_SOURCES = ("vision", "partition")


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


@dataclass
class NarratorConfig:
    """
    All tuneable parameters for a narration run.

    Attributes:
        model:                  Chat model used for every structured call.
        frequency_penalty:      Frequency penalty sent with every call.
        extraction_temperature: Sampling temperature for page extraction
                                and retyping.
        llm_batch_size:         In-flight model calls per batch.
        synthesis_batch_size:   In-flight synthesis tasks per batch.
        retries:                Attempts per external call.
        render_scale:           Resolution multiplier for page images.
        extraction_source:      ``"vision"`` or ``"partition"``.
        detect_relevant_pages:  Drop irrelevant pages before extraction.
        figure_examples:        Few-shot examples for figure summaries.
        figure_examples_dir:    Directory of image + ``.json`` pairs loaded
                                into *figure_examples* when that is empty.
        max_authors:            Authors named before "There are N authors".
        title_pages:            Leading pages used for title/author search.
        narration_voice:        Voice for prose.
        summary_voice:          Voice for figure, table and code summaries.
        lang_code:              Kokoro language code.
        max_chunk_chars:        Character limit per synthesis call.
        use_markup_pauses:      Turn ``[breakN]`` markers into silence.
        audio_format:           ``"mp3"`` or ``"wav"``.
        mp3_bitrate:            Bitrate string for MP3 export.
        normalize_dBFS:         Target loudness for volume normalisation.
        max_file_size_mb:       Intake limit on PDF size.
        max_pages:              Intake limit on page count.
        yolo_model_path:        YOLO weights for the layout partitioner.
        yolo_device:            Force YOLO device (``None`` for auto-select).
        yolo_confidence:        Minimum layout detection confidence.
        layout_scale:           Render scale used for layout detection.
        save_snapshots:         Upload item snapshots after parsing and
                                filtering.
        disable_tqdm:           Suppress progress bars.
    """

    model: str = DEFAULT_MODEL
    frequency_penalty: float = 0.0
    extraction_temperature: float = 0.5
    llm_batch_size: int = 20
    synthesis_batch_size: int = 15
    retries: int = 3

    render_scale: float = 2.0
    extraction_source: str = "vision"
    detect_relevant_pages: bool = False
    figure_examples: List[FewShotExample] = field(default_factory=list)
    figure_examples_dir: Optional[str] = None
    max_authors: int = 5
    title_pages: int = 5

    narration_voice: str = DEFAULT_NARRATION_VOICE
    summary_voice: str = DEFAULT_SUMMARY_VOICE
    lang_code: str = "a"
    max_chunk_chars: int = 2900
    use_markup_pauses: bool = True

    audio_format: str = "mp3"
    mp3_bitrate: str = "192k"
    normalize_dBFS: float = -18.0

    max_file_size_mb: int = 100
    max_pages: int = 100

    yolo_model_path: Optional[str] = None
    yolo_device: Optional[str] = None
    yolo_confidence: float = 0.35
    layout_scale: float = 1.5

    save_snapshots: bool = False
    disable_tqdm: bool = True

    def __post_init__(self):
        if self.extraction_source not in EXTRACTION_SOURCES:
            raise ValueError(
                f"extraction_source must be one of {EXTRACTION_SOURCES}, "
                f"got {self.extraction_source!r}"
            )
        if self.figure_examples_dir and not self.figure_examples:
            self.figure_examples = load_few_shot_examples(self.figure_examples_dir)


# ------------------------------------------------------------------
# Result
# ------------------------------------------------------------------


@dataclass
class NarrationResult:
    """
    Outcome of a successful narration.

    Carries the audio location, the segment metadata, the paper's title
    line and per-phase timing.
    """

    audio_path: Optional[Path] = None
    title: str = NO_TITLE
    authors: str = ""
    date: str = ""
    segments: List[AudioSegmentMeta] = field(default_factory=list)
    toc: List[AudioSegmentMeta] = field(default_factory=list)

    total_pages: int = 0
    pages_processed: int = 0
    extracted_items: int = 0
    narrated_items: int = 0
    summary_failures: int = 0
    tagging_failures: int = 0
    audio_duration: float = 0.0
    file_size_mb: float = 0.0
    elapsed_seconds: float = 0.0

    time_extraction: float = 0.0
    time_summaries: float = 0.0
    time_cleanup: float = 0.0
    time_synthesis: float = 0.0
    time_export: float = 0.0

    def metadata(self) -> Dict:
        """JSON document uploaded next to the audio."""
        return {
            "segments": [s.to_dict() for s in self.segments],
            "tableOfContents": [s.to_dict() for s in self.toc],
        }

    def summary(self) -> str:
        """Format a human-readable summary of the narration run."""
        return (
            f"{'=' * 60}\n"
            f"NARRATION COMPLETE\n"
            f"{'=' * 60}\n"
            f"  Title:        {self.title}\n"
            f"  Authors:      {self.authors or '-'}\n"
            f"  Date:         {self.date or '-'}\n"
            f"  Output:       {self.audio_path}\n"
            f"  Pages:        {self.pages_processed} / {self.total_pages}\n"
            f"  Items:        {self.narrated_items} narrated of "
            f"{self.extracted_items} extracted\n"
            f"  Segments:     {len(self.segments)} ({len(self.toc)} in contents)\n"
            f"  Duration:     {self.audio_duration:.1f}s "
            f"({self.audio_duration / 60:.1f} min)\n"
            f"  File size:    {self.file_size_mb:.1f} MB\n"
            f"\n"
            f"  Extraction:       {self.time_extraction:.1f}s\n"
            f"  Summaries:        {self.time_summaries:.1f}s\n"
            f"  Text cleanup:     {self.time_cleanup:.1f}s\n"
            f"  TTS synthesis:    {self.time_synthesis:.1f}s\n"
            f"  Audio export:     {self.time_export:.2f}s\n"
            f"  Total wall time:  {self.elapsed_seconds:.1f}s\n"
            f"{'=' * 60}"
        )


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------


class NarrationPipeline:
    """
    End-to-end paper narration pipeline.

    Components (completion backend, TTS engine, partitioner) are created
    on first use unless injected, so a pipeline can be constructed
    without credentials or model weights.

    ``stage_snapshots`` holds JSON-ready item snapshots of the latest run
    (``parsedItems``, ``filteredItems``), kept even when the run fails.
    """

    def __init__(
        self,
        config: Optional[NarratorConfig] = None,
        backend: Optional[CompletionBackend] = None,
        engine: Optional[BaseTTSEngine] = None,
        partitioner: Optional[DocumentPartitioner] = None,
    ):
        self.config = config or NarratorConfig()
        self._backend = backend
        self._engine = engine
        self._partitioner = partitioner
        self.stage_snapshots: Dict[str, List[Dict]] = {}

    # ------------------------------------------------------------------
    # Lazy component initialisation
    # ------------------------------------------------------------------

    def _ensure_backend(self) -> CompletionBackend:
        if self._backend is None:
            self._backend = OpenAICompletionBackend(
                model=self.config.model,
                frequency_penalty=self.config.frequency_penalty,
            )
            logger.info("Completion backend ready: %s", self._backend)
        return self._backend

    def _ensure_tts(self) -> BaseTTSEngine:
        if self._engine is None:
            self._engine = KokoroEngine(
                voice=self.config.narration_voice,
                lang_code=self.config.lang_code,
            )
            logger.info("Engine ready: %s", self._engine)
        return self._engine

    def _ensure_partitioner(self) -> DocumentPartitioner:
        if self._partitioner is None:
            self._partitioner = LayoutPartitioner(
                model_path=self.config.yolo_model_path,
                device=self.config.yolo_device,
                scale=self.config.layout_scale,
                confidence=self.config.yolo_confidence,
            )
        return self._partitioner

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def narrate(
        self,
        file_bytes: bytes,
        file_name: str,
        work_dir: Path,
        output_path: Path,
    ) -> NarrationResult:
        """Synchronous wrapper around :meth:`narrate_async`."""
        return asyncio.run(self.narrate_async(file_bytes, file_name, work_dir, output_path))

    async def narrate_async(
        self,
        file_bytes: bytes,
        file_name: str,
        work_dir: Path,
        output_path: Path,
    ) -> NarrationResult:
        """
        Narrate a PDF and export the audio to *output_path*.

        Args:
            file_bytes:  The PDF.
            file_name:   Name used in logs and by the partitioner.
            work_dir:    Scratch directory owned by this run (page images).
            output_path: Destination audio file.

        Returns:
            :class:`NarrationResult` with metadata and timing.

        Raises:
            InvalidPDFFormat: If the PDF cannot be opened.
            RetriesExhaustedError: If extraction or synthesis fails.
        """
        t_total = time.perf_counter()
        self.stage_snapshots = {}
        result = NarrationResult()

        pages, result = self._phase_rasterize(file_bytes, file_name, Path(work_dir), result)
        pages = await self._phase_relevance(pages, result)

        items, result = await self._phase_extract(file_bytes, file_name, pages, result)
        items, metadata, result = await self._phase_summaries(items, pages, result)
        self._snapshot("parsedItems", items)

        items = self._phase_filter(items, result)
        self._snapshot("filteredItems", items)

        result = await self._phase_cleanup(items, result)
        items = self._phase_ordering(items)

        segments, track, result = await self._phase_synthesis(items, result)
        result = self._phase_export(track, Path(output_path), result)

        result.title = metadata.title
        result.authors = metadata.short_authors
        result.date = metadata.date
        result.segments = segments
        result.toc = table_of_contents(segments)
        result.elapsed_seconds = time.perf_counter() - t_total
        logger.info("\n%s", result.summary())
        return result

    def _snapshot(self, name: str, items: List[Item]) -> None:
        self.stage_snapshots[name] = snapshot(items)

    # ------------------------------------------------------------------
    # Phases 1-2 - Rasterization and relevance
    # ------------------------------------------------------------------

    def _phase_rasterize(
        self,
        file_bytes: bytes,
        file_name: str,
        work_dir: Path,
        result: NarrationResult,
    ) -> Tuple[List[PageImage], NarrationResult]:
        t0 = time.perf_counter()
        logger.info("Phase 1: Rasterizing %s", file_name)
        try:
            pdf = PDFDocument.from_bytes(file_bytes, file_name)
        except PDFOpenError as e:
            raise InvalidPDFFormat(str(e)) from e

        with pdf:
            result.total_pages = pdf.page_count
            pages = pdf.rasterize(work_dir / "pages", scale=self.config.render_scale)

        logger.info("Rasterized %d pages in %.1fs", len(pages), time.perf_counter() - t0)
        return pages, result

    async def _phase_relevance(
        self, pages: List[PageImage], result: NarrationResult
    ) -> List[PageImage]:
        cfg = self.config
        if cfg.detect_relevant_pages:
            logger.info("Phase 2: Relevance detection")
            pages = await select_relevant_pages(
                self._ensure_backend(),
                pages,
                batch_size=cfg.llm_batch_size,
                retries=cfg.retries,
                disable_tqdm=cfg.disable_tqdm,
            )
        result.pages_processed = len(pages)
        return pages

    # ------------------------------------------------------------------
    # Phase 3 - Extraction
    # ------------------------------------------------------------------

    async def _phase_extract(
        self,
        file_bytes: bytes,
        file_name: str,
        pages: List[PageImage],
        result: NarrationResult,
    ) -> Tuple[List[Item], NarrationResult]:
        """
        Produce the initial item list from the configured source.

        Returns:
            ``(items, result)`` with items in page order.
        """
        cfg = self.config
        t0 = time.perf_counter()
        logger.info("Phase 3: Extraction (%s)", cfg.extraction_source)
        backend = self._ensure_backend()

        if cfg.extraction_source == "partition":
            elements = await asyncio.to_thread(
                self._ensure_partitioner().partition, file_bytes, file_name
            )
            items = await retype_elements(
                backend,
                elements,
                pages,
                batch_size=cfg.llm_batch_size,
                retries=cfg.retries,
                temperature=cfg.extraction_temperature,
                disable_tqdm=cfg.disable_tqdm,
            )
        else:
            items = await extract_pages(
                backend,
                pages,
                batch_size=cfg.llm_batch_size,
                retries=cfg.retries,
                temperature=cfg.extraction_temperature,
                disable_tqdm=cfg.disable_tqdm,
            )

        result.extracted_items = len(items)
        result.time_extraction = time.perf_counter() - t0
        logger.info(
            "Extraction complete: %d items from %d pages in %.1fs",
            len(items),
            len(pages),
            result.time_extraction,
        )
        return items, result

    # ------------------------------------------------------------------
    # Phase 4 - Summaries, title and authors
    # ------------------------------------------------------------------

    async def _phase_summaries(
        self,
        items: List[Item],
        pages: List[PageImage],
        result: NarrationResult,
    ) -> Tuple[List[Item], PaperMetadata, NarrationResult]:
        cfg = self.config
        t0 = time.perf_counter()
        logger.info("Phase 4: Summaries, title and authors")
        backend = self._ensure_backend()

        result.summary_failures = await summarize_special_items(
            backend,
            items,
            pages,
            figure_examples=cfg.figure_examples,
            batch_size=cfg.llm_batch_size,
            retries=cfg.retries,
            disable_tqdm=cfg.disable_tqdm,
        )
        items = merge_duplicate_labels(items)

        metadata = await extract_title_and_authors(
            backend, items, pages, title_pages=cfg.title_pages, retries=cfg.retries
        )
        items = apply_author_info(items, metadata, max_authors=cfg.max_authors)

        result.time_summaries = time.perf_counter() - t0
        logger.info("Summaries complete in %.1fs", result.time_summaries)
        return items, metadata, result

    # ------------------------------------------------------------------
    # Phase 5 - Filtering
    # ------------------------------------------------------------------

    def _phase_filter(self, items: List[Item], result: NarrationResult) -> List[Item]:
        logger.info("Phase 5: Filtering")
        items = filter_items(mark_reference_sections(items))
        result.narrated_items = len(items)
        return items

    # ------------------------------------------------------------------
    # Phase 6 - Text cleanup
    # ------------------------------------------------------------------

    async def _phase_cleanup(self, items: List[Item], result: NarrationResult) -> NarrationResult:
        """Tag items and run the rewrite passes in place."""
        cfg = self.config
        t0 = time.perf_counter()
        logger.info("Phase 6: Text cleanup")
        backend = self._ensure_backend()
        opts = dict(batch_size=cfg.llm_batch_size, retries=cfg.retries, disable_tqdm=cfg.disable_tqdm)

        result.tagging_failures = await tag_items(backend, items, **opts)
        await remove_citations(backend, items, **opts)
        await verbalize_math(backend, items, **opts)
        await repair_hyphenation(backend, items, **opts)
        tag_cut_offs(items)
        expanded = replace_known_abbreviations(items)

        result.time_cleanup = time.perf_counter() - t0
        logger.info(
            "Cleanup complete in %.1fs (%d items with abbreviations)",
            result.time_cleanup,
            expanded,
        )
        return result

    # ------------------------------------------------------------------
    # Phase 7 - Ordering and pause cues
    # ------------------------------------------------------------------

    def _phase_ordering(self, items: List[Item]) -> List[Item]:
        logger.info("Phase 7: Repositioning special items")
        items = reposition_special_items(items)
        add_pause_cues(items)
        return items

    # ------------------------------------------------------------------
    # Phase 8 - Synthesis and export
    # ------------------------------------------------------------------

    async def _phase_synthesis(
        self, items: List[Item], result: NarrationResult
    ) -> Tuple[List[AudioSegmentMeta], AudioBuilder, NarrationResult]:
        cfg = self.config
        t0 = time.perf_counter()
        logger.info("Phase 8: TTS synthesis")

        segments, track = await synthesize_items(
            self._ensure_tts(),
            items,
            narration_voice=cfg.narration_voice,
            summary_voice=cfg.summary_voice,
            max_chars=cfg.max_chunk_chars,
            use_markup_pauses=cfg.use_markup_pauses,
            batch_size=cfg.synthesis_batch_size,
            retries=cfg.retries,
            disable_tqdm=cfg.disable_tqdm,
        )

        result.time_synthesis = time.perf_counter() - t0
        logger.info(
            "Synthesis complete: %d segments in %.1fs", len(segments), result.time_synthesis
        )
        return segments, track, result

    def _phase_export(
        self, track: AudioBuilder, output_path: Path, result: NarrationResult
    ) -> NarrationResult:
        cfg = self.config
        t0 = time.perf_counter()
        logger.info("Phase 8: Export")

        if track.is_empty:
            logger.warning("No audio produced, exporting an empty track")
        else:
            track.normalize(target_dBFS=cfg.normalize_dBFS)

        track.export(output_path, fmt=cfg.audio_format, bitrate=cfg.mp3_bitrate)
        result.audio_path = output_path
        result.audio_duration = track.get_duration()
        result.file_size_mb = output_path.stat().st_size / (1024 * 1024)
        result.time_export = time.perf_counter() - t0
        return result
