from __future__ import annotations

import asyncio

from papernarrator.items import ItemType, make_item
from papernarrator.script import remove_citations, repair_hyphenation, tag_items, verbalize_math
from papernarrator.script.normalize import (
    CITATION_BAND,
    HYPHENATION_BAND,
    CitationRewrite,
    HyphenationRewrite,
    MathRewrite,
    math_band,
)
from papernarrator.script.tagging import PostprocessingTags


# ---------------------------------------------------------------------------
# Length bands
# ---------------------------------------------------------------------------


def test_length_bands() -> None:
    original = "x" * 100
    assert CITATION_BAND.accepts(original, "y" * 75)
    assert CITATION_BAND.accepts(original, "y" * 105)
    assert not CITATION_BAND.accepts(original, "y" * 65)
    assert not HYPHENATION_BAND.accepts(original, "   ")
    assert math_band(5).upper == 10.0
    assert math_band(1).upper == 1.4
    assert math_band(0).upper == 1.4
    assert math_band(3).lower == 0.9


# ---------------------------------------------------------------------------
# Citations
# ---------------------------------------------------------------------------


def test_citation_rewrite_outside_band_is_reverted(make_backend, text_item) -> None:
    original = "word " * 100
    item = text_item(original, has_citations=True)
    backend = make_backend(
        {CitationRewrite: CitationRewrite(original_text=original, text_with_citations_removed="z" * 200)}
    )

    accepted = asyncio.run(remove_citations(backend, [item]))

    assert accepted == 0
    assert item.content == original
    assert not item.replaced_citations
    assert item.citation_replacement.transformed_text == "z" * 200


def test_citation_rewrite_inside_band_is_applied(make_backend, text_item) -> None:
    original = "Growth rose sharply [3, 14] in the second year."
    cleaned = "Growth rose sharply in the second year."
    item = text_item(original, has_citations=True)
    untagged = text_item("No citations here.")
    backend = make_backend(
        {CitationRewrite: CitationRewrite(original_text=original, text_with_citations_removed=cleaned)}
    )

    accepted = asyncio.run(remove_citations(backend, [item, untagged]))

    assert accepted == 1
    assert item.content == cleaned
    assert item.replaced_citations
    assert len(backend.calls) == 1


def test_failed_rewrite_keeps_text(make_backend, text_item) -> None:
    item = text_item("Loss is x^2.", math_symbol_frequency=2)
    backend = make_backend({MathRewrite: RuntimeError("timeout")})

    accepted = asyncio.run(verbalize_math(backend, [item], retries=2))

    assert accepted == 0
    assert item.content == "Loss is x^2."
    assert item.math_replacement is None


# ---------------------------------------------------------------------------
# Math and hyphenation
# ---------------------------------------------------------------------------


def test_dense_math_allows_long_verbalization(make_backend, text_item) -> None:
    item = text_item("x^2+y^2", item_type=ItemType.MATH, math_symbol_frequency=5)
    spoken = "x squared plus y squared"
    backend = make_backend({MathRewrite: MathRewrite(original_text="x^2+y^2", worded_replacement=spoken)})

    asyncio.run(verbalize_math(backend, [item]))

    assert item.content == spoken
    assert item.optimized_math


def test_light_math_rejects_long_verbalization(make_backend, text_item) -> None:
    original = "Set a=b."
    item = text_item(original, math_symbol_frequency=1)
    backend = make_backend(
        {MathRewrite: MathRewrite(original_text=original, worded_replacement="Set a equal to b, always.")}
    )

    asyncio.run(verbalize_math(backend, [item]))

    assert item.content == original
    assert not item.optimized_math


def test_hyphenation_only_on_flagged_prose(make_backend, text_item) -> None:
    flagged = text_item("The experi- ment worked.", has_hyphenated_words=True)
    math = text_item("a-b", item_type=ItemType.MATH, has_hyphenated_words=True)
    backend = make_backend(
        {
            HyphenationRewrite: HyphenationRewrite(
                original_text=flagged.content, text_with_hyphens_removed="The experiment worked."
            )
        }
    )

    asyncio.run(repair_hyphenation(backend, [flagged, math]))

    assert flagged.content == "The experiment worked."
    assert flagged.hyphenation_replacement is not None
    assert math.content == "a-b"
    assert len(backend.calls) == 1


# ---------------------------------------------------------------------------
# Tagging
# ---------------------------------------------------------------------------


def test_tagging_sets_flags_and_clamps_score(make_backend, text_item) -> None:
    prose = text_item("We cite [4] and use x^2.")
    backend = make_backend(
        {PostprocessingTags: PostprocessingTags(math_symbol_frequency=9, has_citations=True, has_hyphenated_words=False)}
    )

    failures = asyncio.run(tag_items(backend, [prose]))

    assert failures == 0
    assert prose.math_symbol_frequency == 5
    assert prose.has_citations
    assert not prose.has_hyphenated_words


def test_tagging_skips_math_and_special_items(make_backend, text_item, special_item) -> None:
    math = text_item("\\sum_i x_i", item_type=ItemType.MATH)
    table = special_item(ItemType.TABLE_ROWS, "a | b")
    backend = make_backend()

    failures = asyncio.run(tag_items(backend, [math, table]))

    assert failures == 0
    assert math.math_symbol_frequency == 5
    assert backend.calls == []


def test_tagging_failure_uses_defaults(make_backend, text_item) -> None:
    prose = text_item("Plain words.", has_citations=True)
    backend = make_backend()

    failures = asyncio.run(tag_items(backend, [prose], retries=1))

    assert failures == 1
    assert not prose.has_citations
    assert prose.math_symbol_frequency == 0
