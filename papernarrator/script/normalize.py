"""
Model-backed rewrite passes that make text audio-friendly.

Each pass selects eligible :class:`TextItem` objects by type and by a
flag set during tagging, asks for a rewrite that touches only one
phenomenon, and accepts the rewrite only if its length stays inside a
band relative to the original.  Rejected rewrites leave ``content`` as it
was; the proposal is still stored on the item for auditing.

=================  ===============================  ====================
Pass               Eligible                         Accepted length
=================  ===============================  ====================
citations          text with ``has_citations``      0.7x to 1.1x
math               text/abstract/math, freq > 0     0.9x to 1.4x-10x
hyphenation        text/abstract, hyphen flag       0.5x to 1.5x
=================  ===============================  ====================
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Type

from pydantic import BaseModel

from papernarrator.errors import RetriesExhaustedError
from papernarrator.items import Item, ItemType, Replacement, TextItem
from papernarrator.llm import CompletionBackend, run_in_batches

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Length policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LengthBand:
    """Accepted ratio range of rewritten length to original length."""

    lower: float
    upper: float

    def accepts(self, original: str, proposal: str) -> bool:
        if not proposal.strip():
            return False
        n = len(original)
        return n * self.lower <= len(proposal) <= n * self.upper


CITATION_BAND = LengthBand(0.7, 1.1)
HYPHENATION_BAND = LengthBand(0.5, 1.5)

MATH_LOWER = 0.9
MATH_UPPER_BY_FREQUENCY: Dict[int, float] = {5: 10.0, 4: 4.0, 3: 3.0, 2: 2.0, 1: 1.4}
MATH_UPPER_DEFAULT = 1.4


def math_band(frequency: int) -> LengthBand:
    """Denser math verbalizes into proportionally longer prose."""
    return LengthBand(MATH_LOWER, MATH_UPPER_BY_FREQUENCY.get(frequency, MATH_UPPER_DEFAULT))


# ---------------------------------------------------------------------------
# Schemas and prompts
# ---------------------------------------------------------------------------


class CitationRewrite(BaseModel):
    original_text: str
    text_with_citations_removed: str


class MathRewrite(BaseModel):
    original_text: str
    worded_replacement: str


class HyphenationRewrite(BaseModel):
    original_text: str
    text_with_hyphens_removed: str


CITATION_PROMPT = """Remove citation elements from the user text.

Examples of citation elements:
- [10, 38, ...]
- (Author et al., YYYY; Author et al., YYYY; ...)
- ^number
- (Author, year, page number) or Author (year, page number)
- (10, 28, ...)
- Author (page number)

Do not remove entire sentences, only the citation element. If the citation is part of a phrase like "such as <citation element>", remove the phrase. If it is part of "such as <Noun> <citation element>", keep "such as <Noun>" and remove only the citation element.

If the citation looks like "Author <citation element> suggests that...", remove only the citation element and keep the author name.

Do not remove references to tables and figures in the paper.

Return the original text and the text with citations removed."""

MATH_PROMPT = """The following text will be converted to audio for the user to listen to. Replace math notation and all LaTeX formatting with plain English words to make it suitable for listening. Convert accurately.

For example, change "+" to "plus" and insert "times" where multiplication is implied. Make the text as pleasant to listen to as possible.

Only convert math notation, do not alter the rest of the text. Return the entire original text and the worded replacement."""

HYPHENATION_PROMPT = """Remove hyphens from words in the text where a word was split by a line break. Join the parts if both are in the text. If only one part is in the text, remove the hyphen and keep the word as it is without completing it. Keep genuine compound words hyphenated. Return the original text and the text with hyphens removed."""


# ---------------------------------------------------------------------------
# Generic pass
# ---------------------------------------------------------------------------


async def _rewrite_pass(
    backend: CompletionBackend,
    targets: List[TextItem],
    *,
    name: str,
    prompt: str,
    schema: Type[BaseModel],
    proposal_of: Callable[[BaseModel], str],
    band_of: Callable[[TextItem], LengthBand],
    record: Callable[[TextItem, Replacement, bool], None],
    temperature: float,
    batch_size: int,
    retries: int,
    disable_tqdm: bool,
) -> int:
    async def _rewrite(item: TextItem, _index: int) -> bool:
        original = item.content
        try:
            result = await backend.complete(
                prompt,
                f"Text:\n{original}",
                schema,
                retries=retries,
                temperature=temperature,
            )
        except RetriesExhaustedError as e:
            logger.warning("%s rewrite failed on page %d, keeping text: %s", name, item.page, e)
            return False

        proposal = proposal_of(result)
        band = band_of(item)
        accepted = band.accepts(original, proposal)
        record(item, Replacement(original_text=original, transformed_text=proposal), accepted)

        if accepted:
            item.content = proposal
        else:
            logger.info(
                "Reverting %s rewrite on page %d: %d chars not in [%.0f, %.0f]",
                name,
                item.page,
                len(proposal),
                len(original) * band.lower,
                len(original) * band.upper,
            )
        return accepted

    if not targets:
        return 0

    outcomes = await run_in_batches(
        targets,
        _rewrite,
        batch_size=batch_size,
        desc=f"Rewriting {name}",
        disable_tqdm=disable_tqdm,
    )
    accepted = outcomes.count(True)
    logger.info("%s: %d of %d rewrites accepted", name, accepted, len(targets))
    return accepted


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------


def _record_citations(item: TextItem, replacement: Replacement, accepted: bool) -> None:
    item.citation_replacement = replacement
    item.replaced_citations = accepted


def _record_math(item: TextItem, replacement: Replacement, accepted: bool) -> None:
    item.math_replacement = replacement
    item.optimized_math = accepted


def _record_hyphenation(item: TextItem, replacement: Replacement, accepted: bool) -> None:
    item.hyphenation_replacement = replacement


async def remove_citations(
    backend: CompletionBackend,
    items: List[Item],
    batch_size: int = 20,
    retries: int = 3,
    disable_tqdm: bool = True,
) -> int:
    """Strip citation markers from text items flagged with citations."""
    targets = [
        it
        for it in items
        if isinstance(it, TextItem) and it.type == ItemType.TEXT and it.has_citations
    ]
    return await _rewrite_pass(
        backend,
        targets,
        name="citations",
        prompt=CITATION_PROMPT,
        schema=CitationRewrite,
        proposal_of=lambda r: r.text_with_citations_removed,
        band_of=lambda _item: CITATION_BAND,
        record=_record_citations,
        temperature=0.2,
        batch_size=batch_size,
        retries=retries,
        disable_tqdm=disable_tqdm,
    )


async def verbalize_math(
    backend: CompletionBackend,
    items: List[Item],
    batch_size: int = 20,
    retries: int = 3,
    disable_tqdm: bool = True,
) -> int:
    """Replace math notation with spoken English on math-bearing items."""
    targets = [
        it for it in items if isinstance(it, TextItem) and it.math_symbol_frequency > 0
    ]
    return await _rewrite_pass(
        backend,
        targets,
        name="math",
        prompt=MATH_PROMPT,
        schema=MathRewrite,
        proposal_of=lambda r: r.worded_replacement,
        band_of=lambda item: math_band(item.math_symbol_frequency),
        record=_record_math,
        temperature=0.3,
        batch_size=batch_size,
        retries=retries,
        disable_tqdm=disable_tqdm,
    )


async def repair_hyphenation(
    backend: CompletionBackend,
    items: List[Item],
    batch_size: int = 20,
    retries: int = 3,
    disable_tqdm: bool = True,
) -> int:
    """Rejoin words hyphenated across line breaks."""
    targets = [
        it
        for it in items
        if isinstance(it, TextItem)
        and it.type in (ItemType.TEXT, ItemType.ABSTRACT_CONTENT)
        and it.has_hyphenated_words
    ]
    return await _rewrite_pass(
        backend,
        targets,
        name="hyphenation",
        prompt=HYPHENATION_PROMPT,
        schema=HyphenationRewrite,
        proposal_of=lambda r: r.text_with_hyphens_removed,
        band_of=lambda _item: HYPHENATION_BAND,
        record=_record_hyphenation,
        temperature=0.2,
        batch_size=batch_size,
        retries=retries,
        disable_tqdm=disable_tqdm,
    )
