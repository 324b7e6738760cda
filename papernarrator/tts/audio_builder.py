"""
Track assembly on top of pydub.

A builder holds one growing :class:`pydub.AudioSegment`; the synthesizer
uses one per item and then concatenates them into the paper's track.
"""

import io
import logging
from pathlib import Path

from pydub import AudioSegment

logger = logging.getLogger(__name__)

# A WAV with no frames is just its RIFF header
_EMPTY_WAV_SIZE = 44


class AudioBuilder:
    """
    Accumulates WAV speech and silence into one track.

    Usage::

        track = AudioBuilder(sample_rate=24000)
        track.add_speech(wav_bytes)
        track.add_silence(0.4)
        track.normalize(-18.0)
        track.export("paper.mp3")
    """

    def __init__(self, sample_rate: int = 24000):
        self.sample_rate = sample_rate
        self._track = AudioSegment.empty()

    def _append(self, segment: AudioSegment) -> None:
        self._track = self._track + segment

    def add_speech(self, wav_bytes: bytes) -> None:
        if wav_bytes and len(wav_bytes) > _EMPTY_WAV_SIZE:
            self._append(AudioSegment.from_wav(io.BytesIO(wav_bytes)))

    def add_silence(self, duration_seconds: float) -> None:
        if duration_seconds > 0:
            self._append(
                AudioSegment.silent(duration=int(duration_seconds * 1000), frame_rate=self.sample_rate)
            )

    def extend(self, other: "AudioBuilder") -> None:
        """Append another builder's audio (e.g. one item's segment)."""
        if not other.is_empty:
            self._append(other._track)

    def normalize(self, target_dBFS: float = -18.0) -> None:
        """Apply a flat gain so the track averages *target_dBFS*; silence is left alone."""
        loudness = self._track.dBFS if not self.is_empty else float("-inf")
        if loudness != float("-inf"):
            self._track = self._track.apply_gain(target_dBFS - loudness)

    def export(self, output_path, fmt: str = "mp3", bitrate: str = "192k") -> Path:
        """
        Write the track as *fmt* and return the path.

        MP3 goes through ffmpeg; WAV is written by pydub directly.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        options = {"bitrate": bitrate} if fmt == "mp3" else {}
        self._track.export(str(path), format=fmt, **options)
        logger.info(
            "Wrote %s (%.1f min, %.2f MB)",
            path.name,
            self.get_duration() / 60,
            path.stat().st_size / (1024 * 1024),
        )
        return path

    def get_duration(self) -> float:
        """Seconds of audio, counted in frames rather than pydub's whole milliseconds."""
        return self._track.frame_count() / self._track.frame_rate

    @property
    def is_empty(self) -> bool:
        return len(self._track) == 0

    def __repr__(self) -> str:
        return f"AudioBuilder({self.get_duration():.2f}s @ {self.sample_rate}Hz)"
