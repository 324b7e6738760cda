"""
Page-image extraction: one structured completion per rasterized page.

Each page yields an ordered list of ``{type, content}`` items.  Light
post-processing is applied per page before the pages are concatenated in
page order:

* runs of adjacent ``math`` items merge into one (joined by a space) with
  the maximum math score;
* URLs become a spoken placeholder;
* headings are wrapped in pause cues.
"""

import logging
from typing import List, Literal, Sequence, Tuple

from pydantic import BaseModel

from paperdoc import PageImage
from papernarrator.items import EXTRACTION_TYPES, Item, ItemType, TextItem, make_item
from papernarrator.llm import CompletionBackend, run_in_batches
from papernarrator.markup import wrap_heading
from papernarrator.script.text_preprocessor import replace_urls

logger = logging.getLogger(__name__)

MERGED_MATH_FREQUENCY = 5

EXTRACTION_PROMPT = """Please extract all the items in the page in the correct order. Do not exclude any text.

The text of one paragraph should always be one single text item.

Please include math expressions.

Include partial text cut off at the start or end of the page.

Combine all rows of a table into a single table_rows item.

Make sure to detect code and algorithms as separate items out of text.

Please use your best judgement to determine the abstract even if it is not explicitly labeled as such.

Usually, a text item starting with a superscript number is an endnote."""

ExtractedType = Literal[tuple(t.value for t in EXTRACTION_TYPES)]


class ExtractedItem(BaseModel):
    type: ExtractedType
    content: str


class PageExtraction(BaseModel):
    items: List[ExtractedItem]


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------


def merge_adjacent_math(pairs: Sequence[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Collapse runs of consecutive ``math`` pairs into one pair."""
    merged: List[Tuple[str, str]] = []
    for item_type, content in pairs:
        if item_type == ItemType.MATH.value and merged and merged[-1][0] == ItemType.MATH.value:
            merged[-1] = (item_type, f"{merged[-1][1]} {content}")
        else:
            merged.append((item_type, content))
    return merged


def postprocess_page_items(pairs: Sequence[Tuple[str, str]], page: int) -> List[Item]:
    """
    Turn raw ``(type, content)`` pairs of one page into items.

    Args:
        pairs: Model output in reading order.
        page:  1-based page number.
    """
    items: List[Item] = []
    for item_type, content in merge_adjacent_math(pairs):
        item = make_item(ItemType(item_type), replace_urls(content), page)
        if item.type.is_heading:
            item.content = wrap_heading(item.content)
        if isinstance(item, TextItem) and item.type == ItemType.MATH:
            item.math_symbol_frequency = MERGED_MATH_FREQUENCY
        items.append(item)
    return items


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


async def extract_pages(
    backend: CompletionBackend,
    pages: Sequence[PageImage],
    batch_size: int = 20,
    retries: int = 3,
    temperature: float = 0.5,
    disable_tqdm: bool = True,
) -> List[Item]:
    """
    Extract the items of every page, in page order.

    Raises:
        RetriesExhaustedError: If any page fails after all attempts.
    """

    async def _extract(page: PageImage, _index: int) -> List[Item]:
        logger.debug("Extracting page %d", page.page_number)
        result = await backend.complete(
            EXTRACTION_PROMPT,
            "",
            PageExtraction,
            images=[page.path],
            retries=retries,
            temperature=temperature,
        )
        items = postprocess_page_items(
            [(it.type, it.content) for it in result.items], page.page_number
        )
        logger.debug("Page %d: %d items", page.page_number, len(items))
        return items

    per_page = await run_in_batches(
        list(pages),
        _extract,
        batch_size=batch_size,
        desc="Extracting pages",
        unit="page",
        disable_tqdm=disable_tqdm,
    )
    return [item for page_items in per_page for item in page_items]
