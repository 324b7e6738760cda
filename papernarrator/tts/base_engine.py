"""
Abstract base class for TTS engines.

Engines only implement plain synthesis of one voice-tagged string;
:meth:`BaseTTSEngine.speak` adds pause-marker handling on top, so every
engine honours ``[breakN]`` cues the same way.
"""

import io
import wave
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from papernarrator.markup import remove_breaks, split_on_breaks


class BaseTTSEngine(ABC):
    """
    Common interface for the speech engines used by the synthesizer.

    Subclasses implement :meth:`synthesize` and expose ``sample_rate``,
    ``sample_width`` and ``channels``.
    """

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Audio sample rate in Hz."""

    @property
    @abstractmethod
    def sample_width(self) -> int:
        """Sample width in bytes (e.g. 2 for 16-bit PCM)."""

    @property
    @abstractmethod
    def channels(self) -> int:
        """Number of audio channels (1 = mono)."""

    @abstractmethod
    def synthesize(self, text: str, voice: Optional[str] = None, speed_factor: float = 1.0) -> bytes:
        """
        Synthesise *text* (no markup) to WAV bytes.

        Args:
            text:         Text to speak.
            voice:        Voice identifier; ``None`` uses the engine default.
            speed_factor: Speed multiplier (>1 = faster, <1 = slower).

        Returns:
            Complete WAV file as bytes (16-bit PCM).

        Raises:
            RuntimeError: If the engine fails to produce audio.
        """

    def speak(
        self,
        text: str,
        voice: Optional[str] = None,
        use_markup_pauses: bool = True,
        speed_factor: float = 1.0,
    ) -> Tuple[bytes, float]:
        """
        Speak text that may contain ``[breakN]`` pause markers.

        With *use_markup_pauses* each marker becomes N seconds of silence;
        otherwise markers are stripped and the text is spoken in one go.

        Returns:
            ``(wav_bytes, duration_seconds)``
        """
        if not use_markup_pauses:
            wav = self.synthesize(remove_breaks(text), voice, speed_factor)
            return wav, self.get_audio_duration(wav)

        pcm_parts: List[bytes] = []
        for speech, pause_after in split_on_breaks(text):
            if speech.strip():
                pcm_parts.append(self._pcm_frames(self.synthesize(speech, voice, speed_factor)))
            if pause_after > 0:
                pcm_parts.append(self._silence_frames(pause_after))

        wav = self._wrap_wav(b"".join(pcm_parts))
        return wav, self.get_audio_duration(wav)

    def generate_silence(self, duration_seconds: float) -> bytes:
        """Generate a WAV file containing *duration_seconds* of silence."""
        return self._wrap_wav(self._silence_frames(duration_seconds))

    def get_audio_duration(self, wav_bytes: bytes) -> float:
        """Return the duration in seconds of a WAV byte string."""
        with wave.open(io.BytesIO(wav_bytes), "rb") as wf:
            rate = wf.getframerate()
            return wf.getnframes() / rate if rate > 0 else 0.0

    def _silence_frames(self, duration_seconds: float) -> bytes:
        num_samples = int(self.sample_rate * max(0, duration_seconds))
        return b"\x00" * self.sample_width * num_samples * self.channels

    @staticmethod
    def _pcm_frames(wav_bytes: bytes) -> bytes:
        with wave.open(io.BytesIO(wav_bytes), "rb") as wf:
            return wf.readframes(wf.getnframes())

    def _wrap_wav(self, pcm_data: bytes) -> bytes:
        """Wrap raw PCM in a WAV container."""
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(self.sample_width)
            wf.setframerate(self.sample_rate)
            wf.writeframes(pcm_data)
        return buf.getvalue()
