"""
Pause-cue markup embedded in item content.

Narration text carries inline ``[breakN]`` markers, where *N* is a pause
in seconds (``[break0.4]``).  They survive every text pass untouched and
are only interpreted at synthesis time; transcripts strip them.
"""

import re
from typing import List, Tuple

_RE_BREAK = re.compile(r"\[break(\d+(?:\.\d+)?)\]")

HEADING_PAUSE = 0.7
ITEM_PAUSE = 0.4
AUTHOR_PAUSE = 0.3


def pause(seconds: float) -> str:
    """Return the marker for a pause of *seconds*."""
    return f"[break{seconds:g}]"


def remove_breaks(text: str) -> str:
    return _RE_BREAK.sub("", text)


def has_speech(text: str) -> bool:
    """True if *text* has anything left to say once markers are removed."""
    return bool(remove_breaks(text).strip())


def wrap_heading(text: str) -> str:
    return f"{pause(HEADING_PAUSE)}{text}{pause(HEADING_PAUSE)}"


def add_pause_cue(text: str, seconds: float = ITEM_PAUSE) -> str:
    return f"{text}{pause(seconds)}"


def split_on_breaks(text: str) -> List[Tuple[str, float]]:
    """
    Split *text* into ``(speech, pause_after)`` pairs.

    Speech may be empty when a marker opens the text or two markers are
    adjacent; the pause still applies.  The final piece has a pause of 0.

    Example::

        >>> split_on_breaks("[break0.7]Methods[break0.7]")
        [('', 0.7), ('Methods', 0.7)]
    """
    pieces: List[Tuple[str, float]] = []
    last = 0
    for m in _RE_BREAK.finditer(text):
        pieces.append((text[last : m.start()].strip(), float(m.group(1))))
        last = m.end()
    tail = text[last:].strip()
    if tail:
        pieces.append((tail, 0.0))
    return pieces
