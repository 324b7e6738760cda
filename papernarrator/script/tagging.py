"""
Advisory tagging of text items before the rewrite passes.

One completion per text item scores math density and flags citations
and hyphenated words.  Failures are logged and leave the conservative
defaults (no math, no citations, no hyphens), so a flaky call can only
make the narration less polished, never stop it.
"""

import logging
from typing import List

from pydantic import BaseModel

from papernarrator.errors import RetriesExhaustedError
from papernarrator.items import Item, ItemType, TextItem
from papernarrator.llm import CompletionBackend, run_in_batches

logger = logging.getLogger(__name__)

MATH_ITEM_FREQUENCY = 5

TAGGING_PROMPT = """Analyze the following text and

1. Determine the frequency of complex math symbols and numbers. Provide a score between 0 and 5, where 0 means no complex math symbols and numbers and 5 means a high frequency of complex math symbols and numbers.
2. Determine if the text contains citations to other papers. Ignore references to figures, tables or sections of this paper.
3. Determine if the text contains hyphenated words split across lines."""


class PostprocessingTags(BaseModel):
    math_symbol_frequency: int
    has_citations: bool
    has_hyphenated_words: bool


async def tag_items(
    backend: CompletionBackend,
    items: List[Item],
    batch_size: int = 20,
    retries: int = 3,
    disable_tqdm: bool = True,
) -> int:
    """
    Tag every :class:`TextItem` in place.

    Math items are not sent to the model; they keep the fixed high math
    score assigned at extraction.

    Returns:
        Number of items whose tagging call failed and fell back to defaults.
    """
    targets = [it for it in items if isinstance(it, TextItem)]
    for item in targets:
        if item.type == ItemType.MATH:
            item.math_symbol_frequency = MATH_ITEM_FREQUENCY

    async def _tag(item: TextItem, _index: int) -> bool:
        if item.type == ItemType.MATH:
            return True
        try:
            tags = await backend.complete(
                TAGGING_PROMPT,
                f"Text:\n{item.content}",
                PostprocessingTags,
                max_output_tokens=256,
                retries=retries,
                temperature=0.2,
            )
        except RetriesExhaustedError as e:
            logger.warning("Tagging failed on page %d, using defaults: %s", item.page, e)
            item.math_symbol_frequency = 0
            item.has_citations = False
            item.has_hyphenated_words = False
            return False

        item.math_symbol_frequency = min(5, max(0, int(tags.math_symbol_frequency)))
        item.has_citations = tags.has_citations
        item.has_hyphenated_words = tags.has_hyphenated_words
        return True

    outcomes = await run_in_batches(
        targets,
        _tag,
        batch_size=batch_size,
        desc="Tagging items",
        disable_tqdm=disable_tqdm,
    )
    failures = outcomes.count(False)
    logger.info(
        "Tagged %d items (%d citations, %d math, %d hyphenated, %d defaulted)",
        len(targets),
        sum(1 for it in targets if it.has_citations),
        sum(1 for it in targets if it.math_symbol_frequency > 0),
        sum(1 for it in targets if it.has_hyphenated_words),
        failures,
    )
    return failures
