"""
Text helpers for narration content.

URL replacement, cut-off detection for paragraphs broken by a page
boundary, and abbreviation-aware sentence splitting.
"""

import re
from typing import List, Tuple

from papernarrator.items import Item, ItemType, TextItem, is_end_cut_off
from papernarrator.markup import add_pause_cue

URL_PLACEHOLDER = "See URL in paper."

# -----------------------------------------------------------------
# Regex patterns
# -----------------------------------------------------------------

_RE_URL = re.compile(r"https?://\S+", re.IGNORECASE)

# A paragraph that starts mid-sentence has no leading capital
_RE_PROPER_START = re.compile(r"^[A-Z]")

# ...and one that is cut at the end lacks terminal punctuation; a
# trailing ellipsis counts as cut
_RE_PROPER_END = re.compile(r"(?<!\.)[.!?)\]]$")

# Words whose trailing period never ends a sentence
_NOT_SENTENCE_ENDS = frozenset(
    "Mr Mrs Ms Dr Prof vs etc al Vol No Fig Figs Eq Eqs Sec Ref Refs approx cf".split()
)

# Terminal punctuation, whitespace, then a capital, a quote or a pause marker
_RE_SENTENCE_END = re.compile(r'[.!?]\s+(?=[A-Z"\[])')

CUT_OFF_TYPES = (ItemType.TEXT, ItemType.ABSTRACT_CONTENT)


# -----------------------------------------------------------------
# Public API
# -----------------------------------------------------------------


def replace_urls(text: str) -> str:
    return _RE_URL.sub(URL_PLACEHOLDER, text)


def detect_cut_off(text: str) -> Tuple[bool, bool]:
    """
    Return ``(is_start_cut_off, is_end_cut_off)`` for a paragraph.

    A paragraph is start-cut when it does not begin with a capital letter
    and end-cut when it does not end with ``. ! ? ) ]`` (an ellipsis
    counts as cut).
    """
    stripped = text.strip()
    return (
        not _RE_PROPER_START.search(stripped),
        not _RE_PROPER_END.search(stripped),
    )


def tag_cut_offs(items: List[Item]) -> None:
    """Set the cut-off flags on every text and abstract item in place."""
    for item in items:
        if isinstance(item, TextItem) and item.type in CUT_OFF_TYPES:
            item.is_start_cut_off, item.is_end_cut_off = detect_cut_off(item.content)


def split_sentences(text: str) -> List[str]:
    """
    Split *text* after ``. ! ?`` when the next word is capitalised,
    unless the period closes an abbreviation such as ``Dr.`` or ``Fig.``.
    """
    cuts = [0]
    for m in _RE_SENTENCE_END.finditer(text):
        words = text[cuts[-1] : m.start()].split()
        if words and words[-1] in _NOT_SENTENCE_ENDS:
            continue
        cuts.append(m.start() + 1)
    cuts.append(len(text))

    pieces = (text[a:b].strip() for a, b in zip(cuts, cuts[1:]))
    return [p for p in pieces if p]


PAUSE_CUE_TYPES = (
    ItemType.TEXT,
    ItemType.FIGURE_IMAGE,
    ItemType.CODE_OR_ALGORITHM,
    ItemType.TABLE_ROWS,
    ItemType.ABSTRACT_CONTENT,
)


def add_pause_cues(items: List[Item]) -> None:
    """Append a short pause to every complete paragraph and special item."""
    for item in items:
        if item.type in PAUSE_CUE_TYPES and not is_end_cut_off(item):
            item.content = add_pause_cue(item.content)
