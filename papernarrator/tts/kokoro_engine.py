"""
Kokoro TTS engine wrapper.

Runs the Kokoro neural TTS model locally on CPU or GPU.  The ~82 MB model
is fetched from HuggingFace by ``kokoro`` itself on first use.
"""

import logging
import threading
from typing import Optional

import numpy as np

from .base_engine import BaseTTSEngine

logger = logging.getLogger(__name__)

SAMPLE_RATE = 24000

_ACCENTS = {"a": "American", "b": "British"}
_GENDERS = {"f": "Female", "m": "Male"}


def _voice_table(*voice_ids: str) -> dict:
    # Kokoro ids encode accent and gender in their two-letter prefix
    return {
        vid: {
            "accent": _ACCENTS[vid[0]],
            "gender": _GENDERS[vid[1]],
            "name": vid.split("_", 1)[1].capitalize(),
        }
        for vid in voice_ids
    }


KOKORO_VOICES = _voice_table(
    "af_heart", "af_bella", "af_nicole", "af_sarah", "af_sky",
    "am_adam", "am_michael", "am_fenrir", "am_puck",
    "bf_emma", "bf_isabella", "bm_george", "bm_lewis",
)

DEFAULT_NARRATION_VOICE = "af_heart"
DEFAULT_SUMMARY_VOICE = "am_michael"


class KokoroEngine(BaseTTSEngine):
    """
    Kokoro speech for both narration voices.

    Usage::

        engine = KokoroEngine()
        wav_bytes = engine.synthesize("Hello world", voice="am_michael")

    ``KPipeline`` is built on the first synthesis.  Synthesis runs on
    worker threads, so calls into the pipeline hold a lock.
    """

    def __init__(self, voice: str = DEFAULT_NARRATION_VOICE, lang_code: str = "a"):
        """
        Args:
            voice:     Voice used when a call names none (see :data:`KOKORO_VOICES`).
            lang_code: ``'a'`` American English, ``'b'`` British English.
        """
        self._voice = voice
        self._lang_code = lang_code
        self._kpipeline = None
        self._lock = threading.Lock()

    def _load(self):
        if self._kpipeline is None:
            from kokoro import KPipeline

            logger.info("Loading Kokoro (lang=%s)...", self._lang_code)
            self._kpipeline = KPipeline(lang_code=self._lang_code)
        return self._kpipeline

    @property
    def sample_rate(self) -> int:
        return SAMPLE_RATE

    @property
    def sample_width(self) -> int:
        return 2

    @property
    def channels(self) -> int:
        return 1

    def synthesize(self, text: str, voice: Optional[str] = None, speed_factor: float = 1.0) -> bytes:
        if not text or not text.strip():
            return self.generate_silence(0.0)

        voice = voice or self._voice
        with self._lock:
            generator = self._load()(text, voice=voice, speed=max(0.1, speed_factor))
            # one result per phrase
            pieces = [
                np.asarray(audio, dtype=np.float32)
                for _gs, _ps, audio in generator
                if audio is not None
            ]

        if not pieces:
            raise RuntimeError(f"Kokoro produced no audio for {len(text)} chars (voice={voice})")

        samples = np.clip(np.concatenate(pieces), -1.0, 1.0)
        return self._wrap_wav((samples * 32767).astype(np.int16).tobytes())

    def __repr__(self) -> str:
        return f"KokoroEngine(voice={self._voice}, lang={self._lang_code})"
