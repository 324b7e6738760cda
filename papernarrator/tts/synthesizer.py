"""
Item-to-audio synthesis with time-indexed metadata.

Each item is split into chunks under the engine's character limit,
spoken with a voice chosen by item type, and its chunks are concatenated
into one segment.  Segment durations are measured from the assembled
audio, and start times are the running sum of the durations before them,
so the metadata always lines up with the exported track.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from papernarrator.items import Item, ItemType, SPECIAL_TYPES
from papernarrator.llm import run_in_batches, with_retries
from papernarrator.markup import remove_breaks
from papernarrator.script.text_preprocessor import split_sentences

from .audio_builder import AudioBuilder
from .base_engine import BaseTTSEngine
from .kokoro_engine import DEFAULT_NARRATION_VOICE, DEFAULT_SUMMARY_VOICE

logger = logging.getLogger(__name__)

MAX_CHUNK_CHARS = 2900

HARD_SPLIT = "hard_split"
EMPTY_AUDIO = "empty_audio"

TOC_TYPES = (ItemType.MAIN_TITLE, ItemType.END_MARKER)


@dataclass
class AudioSegmentMeta:
    """Timing record of one synthesized item."""

    index: int
    type: str
    start_time: float
    duration: float
    transcript: str
    page: int
    audio_issues: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "type": self.type,
            "startTime": self.start_time,
            "duration": self.duration,
            "transcript": self.transcript,
            "page": self.page,
            "audioIssues": list(self.audio_issues),
        }


# ---------------------------------------------------------------------------
# Chunking and voices
# ---------------------------------------------------------------------------


def _hard_split(sentence: str, max_chars: int) -> List[str]:
    """Split at whitespace; a single over-long word is cut outright."""
    pieces: List[str] = []
    current = ""
    for word in sentence.split():
        while len(word) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:max_chars])
            word = word[max_chars:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_chars:
            pieces.append(current)
            current = word
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def chunk_text(text: str, max_chars: int = MAX_CHUNK_CHARS) -> Tuple[List[str], bool]:
    """
    Pack whole sentences into chunks of at most *max_chars*.

    Returns:
        ``(chunks, hard_split)``; *hard_split* is True when a sentence
        longer than the limit had to be cut mid-sentence.
    """
    chunks: List[str] = []
    current = ""
    hard_split = False

    for sentence in split_sentences(text.strip()):
        if len(sentence) > max_chars:
            hard_split = True
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(_hard_split(sentence, max_chars))
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate

    if current:
        chunks.append(current)
    return chunks, hard_split


def voice_for(
    item_type: ItemType,
    narration_voice: str = DEFAULT_NARRATION_VOICE,
    summary_voice: str = DEFAULT_SUMMARY_VOICE,
) -> str:
    """Summarized figures, tables and code are read in the summary voice."""
    return summary_voice if item_type in SPECIAL_TYPES else narration_voice


def is_toc_entry(item_type: str) -> bool:
    return "heading" in item_type or item_type in {t.value for t in TOC_TYPES}


def table_of_contents(segments: Sequence[AudioSegmentMeta]) -> List[AudioSegmentMeta]:
    """Headings, the title and end markers, for seek navigation."""
    return [s for s in segments if is_toc_entry(s.type)]


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


async def synthesize_items(
    engine: BaseTTSEngine,
    items: Sequence[Item],
    narration_voice: str = DEFAULT_NARRATION_VOICE,
    summary_voice: str = DEFAULT_SUMMARY_VOICE,
    max_chars: int = MAX_CHUNK_CHARS,
    use_markup_pauses: bool = True,
    batch_size: int = 15,
    retries: int = 3,
    disable_tqdm: bool = True,
) -> Tuple[List[AudioSegmentMeta], AudioBuilder]:
    """
    Synthesize every item and assemble the full track.

    Engine calls run on worker threads, *batch_size* items at a time.

    Returns:
        ``(segments, track)`` where ``segments[i]`` describes ``items[i]``.

    Raises:
        RetriesExhaustedError: If any chunk fails after all attempts.
    """

    async def _speak_item(item: Item, index: int) -> AudioBuilder:
        chunks, hard_split = chunk_text(item.content, max_chars)
        if hard_split:
            item.audio_issues.append(HARD_SPLIT)
            logger.warning("Item %d (page %d) needed a mid-sentence split", index, item.page)

        voice = voice_for(item.type, narration_voice, summary_voice)
        segment = AudioBuilder(sample_rate=engine.sample_rate)
        for n, chunk in enumerate(chunks):
            wav, _duration = await with_retries(
                lambda chunk=chunk: asyncio.to_thread(engine.speak, chunk, voice, use_markup_pauses),
                retries=retries,
                label=f"synthesis[item {index}, chunk {n}]",
            )
            segment.add_speech(wav)
        return segment

    per_item = await run_in_batches(
        list(items),
        _speak_item,
        batch_size=batch_size,
        desc="Synthesizing audio",
        disable_tqdm=disable_tqdm,
    )

    track = AudioBuilder(sample_rate=engine.sample_rate)
    segments: List[AudioSegmentMeta] = []
    start = 0.0
    for index, (item, audio) in enumerate(zip(items, per_item)):
        if audio.is_empty:
            item.audio_issues.append(EMPTY_AUDIO)
            logger.warning("Item %d (%s, page %d) produced no audio", index, item.type.value, item.page)

        duration = audio.get_duration()
        segments.append(
            AudioSegmentMeta(
                index=index,
                type=item.type.value,
                start_time=start,
                duration=duration,
                transcript=remove_breaks(item.content).strip(),
                page=item.page,
                audio_issues=list(item.audio_issues),
            )
        )
        track.extend(audio)
        start += duration

    logger.info("Synthesized %d segments, %.1fs total", len(segments), start)
    return segments, track
