"""Speech synthesis: engines, track assembly and segment timing."""

from .audio_builder import AudioBuilder
from .base_engine import BaseTTSEngine
from .kokoro_engine import DEFAULT_NARRATION_VOICE, DEFAULT_SUMMARY_VOICE, KOKORO_VOICES, KokoroEngine
from .synthesizer import AudioSegmentMeta, chunk_text, synthesize_items, table_of_contents, voice_for

__all__ = [
    "AudioBuilder",
    "AudioSegmentMeta",
    "BaseTTSEngine",
    "DEFAULT_NARRATION_VOICE",
    "DEFAULT_SUMMARY_VOICE",
    "KOKORO_VOICES",
    "KokoroEngine",
    "chunk_text",
    "synthesize_items",
    "table_of_contents",
    "voice_for",
]
