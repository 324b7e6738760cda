"""
Structural filtering of the extracted item list.

Two passes, applied in order:

1. :func:`mark_reference_sections`: normalize acknowledgement and
   references headings, demote stray references headings, and insert the
   ``end_marker`` right after the last references block.
2. :func:`filter_items`: drop everything the listener should not hear:
   front matter before the abstract, the acknowledgements and references
   sections, boilerplate types, and empty items.
"""

import logging
from typing import List

from papernarrator.items import Item, ItemType, PlainItem, retype
from papernarrator.markup import ITEM_PAUSE, has_speech, pause, remove_breaks

logger = logging.getLogger(__name__)

END_OF_PAPER = f"{pause(ITEM_PAUSE)}You have reached the end of the paper.{pause(ITEM_PAUSE)}"
END_OF_MAIN_PAPER = (
    f"{pause(ITEM_PAUSE)}You have reached the end of the main paper. "
    f"Appendix sections follow.{pause(ITEM_PAUSE)}"
)

# Kept before the abstract when the paper has one
_FRONT_MATTER_TYPES = {
    ItemType.MAIN_TITLE,
    ItemType.IMPROVED_AUTHOR_INFO,
    ItemType.ABSTRACT_HEADING,
    ItemType.ABSTRACT_CONTENT,
}

_BODY_TYPES = {
    ItemType.TEXT,
    ItemType.HEADING,
    ItemType.FIGURE_IMAGE,
    ItemType.TABLE_ROWS,
    ItemType.MATH,
    ItemType.ABSTRACT_CONTENT,
    ItemType.CODE_OR_ALGORITHM,
    ItemType.END_MARKER,
}

# Without an abstract the title and authors are part of the body
_NO_ABSTRACT_TYPES = _BODY_TYPES | {
    ItemType.MAIN_TITLE,
    ItemType.IMPROVED_AUTHOR_INFO,
    ItemType.ABSTRACT_HEADING,
}

_REFERENCE_TYPES = (ItemType.REFERENCES_HEADING, ItemType.REFERENCES_ITEM)


def _plain_text(item: Item) -> str:
    return remove_breaks(item.content).strip().lower()


# ---------------------------------------------------------------------------
# References, acknowledgements and the end marker
# ---------------------------------------------------------------------------


def mark_reference_sections(items: List[Item]) -> List[Item]:
    """
    Retype section headings and insert the end-of-paper marker.

    Generic headings mentioning acknowledgements or references are
    retyped; every references heading but the last becomes
    ``stray_references_heading``.  An ``end_marker`` is inserted after the
    last references heading or references item, on that item's page.  No
    marker is inserted when the paper has neither.

    Returns:
        A new list (the input is not modified, except for retyped items).
    """
    result: List[Item] = []
    for item in items:
        if item.type == ItemType.HEADING:
            text = _plain_text(item)
            if "acknowledg" in text:
                item = retype(item, ItemType.ACKNOWLEDGEMENTS_HEADING)
            elif "reference" in text:
                item = retype(item, ItemType.REFERENCES_HEADING)
        result.append(item)

    headings = [i for i, it in enumerate(result) if it.type == ItemType.REFERENCES_HEADING]
    for i in headings[:-1]:
        result[i] = retype(result[i], ItemType.STRAY_REFERENCES_HEADING)

    last_ref = -1
    for i in range(len(result) - 1, -1, -1):
        if result[i].type in _REFERENCE_TYPES:
            last_ref = i
            break

    if last_ref != -1:
        marker = PlainItem(type=ItemType.END_MARKER, content=END_OF_PAPER, page=result[last_ref].page)
        result.insert(last_ref + 1, marker)
        logger.debug("End marker inserted at %d (page %d)", last_ref + 1, marker.page)
    else:
        logger.debug("No references found, end marker omitted")

    return result


# ---------------------------------------------------------------------------
# Inclusion policy
# ---------------------------------------------------------------------------


def _has_abstract(items: List[Item]) -> bool:
    return any(
        it.type in (ItemType.ABSTRACT_HEADING, ItemType.ABSTRACT_CONTENT)
        or _plain_text(it) == "abstract"
        for it in items
    )


def _is_sandwiched_math(items: List[Item], index: int) -> bool:
    """Math between two endnotes is part of the notes, not the body."""
    if items[index].type != ItemType.MATH or index == 0 or index == len(items) - 1:
        return False
    return (
        items[index - 1].type == ItemType.ENDNOTES_ITEM
        and items[index + 1].type == ItemType.ENDNOTES_ITEM
    )


def filter_items(items: List[Item]) -> List[Item]:
    """
    Apply the inclusion policy and return the kept items in order.

    Section flags are set by the acknowledgements and references headings
    and cleared by any other heading; items inside either section are
    dropped.  If anything follows the end marker its text announces the
    appendices.
    """
    abstract_exists = _has_abstract(items)
    abstract_seen = not abstract_exists
    allowed = _BODY_TYPES if abstract_exists else _NO_ABSTRACT_TYPES

    in_acknowledgements = False
    in_references = False
    main_title_seen = False
    kept: List[Item] = []

    for index, item in enumerate(items):
        if not abstract_seen:
            if item.type == ItemType.ABSTRACT_HEADING or _plain_text(item) == "abstract":
                abstract_seen = True
                item = retype(item, ItemType.ABSTRACT_HEADING)
            elif item.type == ItemType.ABSTRACT_CONTENT:
                abstract_seen = True
            if item.type in _FRONT_MATTER_TYPES and has_speech(item.content):
                kept.append(item)
            continue

        if item.type == ItemType.END_MARKER:
            kept.append(item)
            continue

        if item.type == ItemType.ACKNOWLEDGEMENTS_HEADING:
            in_acknowledgements = True
        elif item.type.is_heading:
            in_acknowledgements = False

        if item.type == ItemType.REFERENCES_HEADING:
            in_references = True
        elif item.type.is_heading:
            in_references = False

        if in_acknowledgements or in_references:
            continue
        if _is_sandwiched_math(items, index):
            continue
        if not has_speech(item.content):
            continue

        if item.type == ItemType.MAIN_TITLE:
            if main_title_seen:
                continue
            main_title_seen = True

        if item.type in allowed:
            kept.append(item)

    for i, item in enumerate(kept):
        if item.type == ItemType.END_MARKER and i < len(kept) - 1:
            item.content = END_OF_MAIN_PAPER
            break

    logger.debug(
        "Filter kept %d of %d items (abstract=%s)", len(kept), len(items), abstract_exists
    )
    return kept


