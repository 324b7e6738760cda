"""
Code-only abbreviation handling for narration.

Two kinds of entries:

* ``initialism``: spelled out letter by letter, so periods are inserted
  between the letters (``CI`` becomes ``C.I.``, ``CIs`` becomes ``C.I.s``).
* ``expansion``: read as the full phrase (``e.g.`` becomes
  ``for example``).

Matching is whole-word and case-sensitive, so ``ROC`` is rewritten but
``Rock`` and ``roc`` are not.  A period that closes both an abbreviation
and its sentence survives the rewrite, so ``Smith et al.`` at the end of a
paragraph becomes ``Smith and others.`` and ``CI.`` becomes ``C.I.``.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Match, Pattern, Sequence, Tuple

from papernarrator.items import Item

INITIALISM = "initialism"
EXPANSION = "expansion"


@dataclass(frozen=True)
class Abbreviation:
    abbreviation: str
    expansion: str
    replacement: str
    type: str
    # whether a following capitalised word may start a new sentence
    can_end_sentence: bool = False


def initialism(abbreviation: str, expansion: str) -> Abbreviation:
    dotted = ".".join(abbreviation) + "."
    return Abbreviation(abbreviation, expansion, dotted, INITIALISM)


def spoken(abbreviation: str, expansion: str, can_end_sentence: bool = False) -> Abbreviation:
    return Abbreviation(abbreviation, expansion, expansion, EXPANSION, can_end_sentence)


ABBREVIATIONS: Tuple[Abbreviation, ...] = (
    initialism("CI", "confidence interval"),
    initialism("ROC", "receiver operating characteristic"),
    initialism("AUC", "area under the curve"),
    initialism("RCT", "randomized controlled trial"),
    initialism("OLS", "ordinary least squares"),
    initialism("MSE", "mean squared error"),
    spoken("e.g.", "for example"),
    spoken("i.e.", "that is"),
    spoken("et al.", "and others", can_end_sentence=True),
    spoken("vs.", "versus"),
    spoken("cf.", "compare"),
    spoken("approx.", "approximately"),
    spoken("Fig.", "Figure"),
    spoken("Figs.", "Figures"),
    spoken("Eq.", "Equation"),
    spoken("Eqs.", "Equations"),
    spoken("Sec.", "Section"),
)

# After an abbreviation's own period: end of text, or a new capitalised sentence
_RE_TEXT_END = re.compile(r"\s*$")
_RE_NEXT_SENTENCE = re.compile(r"\s+[A-Z]")


def _ends_sentence(entry: Abbreviation, text: str, pos: int) -> bool:
    if _RE_TEXT_END.match(text, pos):
        return True
    return entry.can_end_sentence and bool(_RE_NEXT_SENTENCE.match(text, pos))


def _compile(entry: Abbreviation) -> Tuple[Pattern, Callable[[Match], str]]:
    escaped = re.escape(entry.abbreviation)
    if entry.type == INITIALISM:
        # an optional lowercase plural stays attached to the dotted form, and
        # a sentence-final period is absorbed by the dotted form's own
        def dotted(m: Match) -> str:
            plural, period = m.group(1), m.group(2)
            return entry.replacement + (plural + period if plural else "")

        return re.compile(rf"\b{escaped}(s?)\b(\.?)"), dotted

    def expanded(m: Match) -> str:
        keep_period = entry.abbreviation.endswith(".") and _ends_sentence(entry, m.string, m.end())
        return entry.replacement + ("." if keep_period else "")

    return re.compile(rf"(?<!\w){escaped}(?!\w)"), expanded


def expand_abbreviations(
    text: str,
    table: Sequence[Abbreviation] = ABBREVIATIONS,
) -> str:
    """Rewrite every whole-word occurrence of the table's abbreviations."""
    # longest first so "Figs." wins over "Fig."
    for entry in sorted(table, key=lambda e: -len(e.abbreviation)):
        pattern, repl = _compile(entry)
        text = pattern.sub(repl, text)
    return text


def replace_known_abbreviations(
    items: List[Item],
    table: Sequence[Abbreviation] = ABBREVIATIONS,
) -> int:
    """
    Apply :func:`expand_abbreviations` to every item in place.

    Returns:
        Number of items whose content changed.
    """
    changed = 0
    for item in items:
        rewritten = expand_abbreviations(item.content, table)
        if rewritten != item.content:
            item.content = rewritten
            changed += 1
    return changed
