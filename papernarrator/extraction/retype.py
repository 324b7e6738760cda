"""
Retyping of partitioned layout elements into the item vocabulary.

Used when items come from a :class:`DocumentPartitioner` instead of the
page-image extraction.  Elements are grouped by page; for each page the
model sees the page image and the page's elements and returns a new type
for each ``element_id``.  The new type replaces the layout type outright.
"""

import json
import logging
from collections import OrderedDict
from typing import Dict, List, Literal, Sequence

from pydantic import BaseModel

from paperdoc import PageImage
from papernarrator.items import RETYPE_TYPES, Item, ItemType, make_item
from papernarrator.llm import CompletionBackend, run_in_batches
from papernarrator.markup import wrap_heading
from papernarrator.partition import RawElement
from papernarrator.script.text_preprocessor import replace_urls

logger = logging.getLogger(__name__)

DROPPED_ELEMENT_TYPES = {"Page-header", "Page-footer", "PageNumber", "Header", "Footer"}
CONTAINER_ELEMENT_TYPES = {"Picture", "Table"}

# Used for elements the model leaves out of its answer
FALLBACK_TYPES: Dict[str, ItemType] = {
    "Title": ItemType.HEADING,
    "Section-header": ItemType.HEADING,
    "Text": ItemType.TEXT,
    "List-item": ItemType.TEXT,
    "UncategorizedText": ItemType.TEXT,
    "Caption": ItemType.FIGURE_CAPTION,
    "Footnote": ItemType.FOOTNOTES,
    "Formula": ItemType.MATH,
    "Picture": ItemType.FIGURE_IMAGE,
    "Table": ItemType.TABLE_ROWS,
}

RETYPE_PROMPT = """For all the given items, accurately determine the new more specific item type. Look at the surrounding items for context. You must produce the correct element_id. And you must produce a new type for every item.

Some helpful guidance:
- Usually, a text item starting with a superscript number is an endnote.
- Text in a smaller font or separate from the content of the page is usually a footnote.
- Some code parts can be labeled as Title; convert them to the code_or_algorithm type.
- Always map Picture elements to figure_image, non_figure_image or code_or_algorithm. A minor image with meta content is a non_figure_image, otherwise it is almost always a figure_image. If it contains code it is a code_or_algorithm."""

RetypeValue = Literal[tuple(t.value for t in RETYPE_TYPES)]


class ElementRetype(BaseModel):
    element_id: str
    old_type: str
    new_type: RetypeValue


class PageRetyping(BaseModel):
    items_with_new_types: List[ElementRetype]


def group_by_page(elements: Sequence[RawElement]) -> "OrderedDict[int, List[RawElement]]":
    """
    Drop page furniture and blank elements, then group by page number.

    Picture and table elements survive with empty text, since their
    content is read from the page image later.
    """
    grouped: "OrderedDict[int, List[RawElement]]" = OrderedDict()
    for element in elements:
        if element.type in DROPPED_ELEMENT_TYPES:
            continue
        if not element.text.strip() and element.type not in CONTAINER_ELEMENT_TYPES:
            continue
        grouped.setdefault(element.page_number, []).append(element)
    return OrderedDict(sorted(grouped.items()))


def fallback_type(element: RawElement) -> ItemType:
    return FALLBACK_TYPES.get(element.type, ItemType.TEXT)


def elements_to_items(elements: Sequence[RawElement], new_types: Dict[str, ItemType]) -> List[Item]:
    items: List[Item] = []
    for element in elements:
        item_type = new_types.get(element.element_id) or fallback_type(element)
        content = replace_urls(element.text.strip())
        if item_type.is_heading:
            content = wrap_heading(content)
        items.append(make_item(item_type, content, element.page_number))
    return items


async def retype_elements(
    backend: CompletionBackend,
    elements: Sequence[RawElement],
    pages: Sequence[PageImage],
    batch_size: int = 20,
    retries: int = 3,
    temperature: float = 0.5,
    disable_tqdm: bool = True,
) -> List[Item]:
    """
    Retype every element page by page and return items in page order.

    Pages without an image (dropped by relevance detection) are skipped.

    Raises:
        RetriesExhaustedError: If any page fails after all attempts.
    """
    grouped = group_by_page(elements)
    images = {p.page_number: p for p in pages}
    page_numbers = [n for n in grouped if n in images]

    async def _retype(page_number: int, _index: int) -> List[Item]:
        page_elements = grouped[page_number]
        payload = json.dumps([e.to_prompt_dict() for e in page_elements], indent=2)
        result = await backend.complete(
            RETYPE_PROMPT,
            payload,
            PageRetyping,
            images=[images[page_number].path],
            retries=retries,
            temperature=temperature,
        )
        known = {e.element_id for e in page_elements}
        new_types = {
            r.element_id: ItemType(r.new_type)
            for r in result.items_with_new_types
            if r.element_id in known
        }
        missing = len(known) - len(new_types)
        if missing:
            logger.debug("Page %d: %d elements kept their fallback type", page_number, missing)
        return elements_to_items(page_elements, new_types)

    per_page = await run_in_batches(
        page_numbers,
        _retype,
        batch_size=batch_size,
        desc="Retyping elements",
        unit="page",
        disable_tqdm=disable_tqdm,
    )
    items = [item for page_items in per_page for item in page_items]
    logger.info("Retyped %d elements on %d pages", len(items), len(page_numbers))
    return items
