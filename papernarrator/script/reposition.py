"""
Reposition figures, tables and code next to where the text mentions them.

Page extraction emits special items wherever they sit on the page, often
far from the paragraph that discusses them.  For every labeled special
item the repositioner:

1. searches the other items for the first mention of its label, using a
   case-insensitive alias table (``Fig. 3``, ``FIGURE 3``, ``Algo. 2``);
2. scans forward from the mention (or from just after the item when there
   is no mention) for an anchor: the first heading, or the first text
   item that is not cut off at its end;
3. moves the item right after a text anchor or right before a heading
   anchor (end of list if there is no anchor), then further down past any
   item of the same type already there.

Each item is moved at most once; the ``repositioned`` flag makes repeated
runs a no-op.
"""

import logging
import re
from typing import Dict, List, Pattern, Tuple

from papernarrator.items import Item, ItemArena, ItemType, Label, SpecialItem, is_end_cut_off

logger = logging.getLogger(__name__)

LABEL_ALIASES: Dict[str, Tuple[str, ...]] = {
    "figure": ("figure", "fig.", "fig"),
    "chart": ("chart",),
    "image": ("image", "img.", "img"),
    "table": ("table", "table."),
    "algorithm": ("algorithm", "algo.", "algo", "alg."),
}


def mention_patterns(label: Label) -> List[Pattern]:
    """
    Regexes matching a textual mention of *label*.

    Unnumbered labels have no mention patterns.  ``Figure 1`` does not
    match ``Figure 12``, but does match ``Figure 1b``.
    """
    if not label.is_numbered:
        return []
    label_type = label.label_type.strip().lower()
    aliases = LABEL_ALIASES.get(label_type, (label_type,))
    number = re.escape(label.label_number.strip())
    return [
        re.compile(rf"(?<![a-z]){re.escape(alias)}\s*{number}(?!\d)", re.IGNORECASE)
        for alias in aliases
        if alias
    ]


def _is_anchor(item: Item) -> bool:
    return item.type.is_heading or (item.type == ItemType.TEXT and not is_end_cut_off(item))


def _target_index(arena: ItemArena, current: int, anchor: int) -> int:
    """Insertion index into the list as it will be once the item is removed."""
    if anchor == -1:
        return len(arena)
    if arena[anchor].type.is_heading:
        return anchor + (-1 if current < anchor else 0)
    return anchor + (0 if current < anchor else 1)


def reposition_special_items(items: List[Item]) -> List[Item]:
    """
    Move labeled special items next to their first mention.

    Returns:
        The reordered list; items themselves are only flagged.
    """
    arena = ItemArena(items)
    specials = [it for it in items if isinstance(it, SpecialItem)]

    moved = 0
    for item in specials:
        if item.repositioned or item.label is None:
            continue

        current = arena.index_of(item)
        patterns = mention_patterns(item.label)
        mention = -1
        if patterns:
            mention = arena.find(
                lambda other: other is not item
                and any(p.search(other.content) for p in patterns)
            )

        start = mention if mention != -1 else current + 1
        anchor = arena.find(_is_anchor, start)
        target = _target_index(arena, current, anchor)

        arena.remove_at(current)
        while target < len(arena) and arena[target].type == item.type:
            target += 1
        arena.insert(max(0, min(target, len(arena))), item)
        item.repositioned = True
        moved += 1

        logger.debug(
            "Repositioned %s: %d -> %d (mention=%d, anchor=%d)",
            item.label.label_string or item.type.value,
            current,
            arena.index_of(item),
            mention,
            anchor,
        )

    logger.info("Repositioned %d special items", moved)
    return arena.to_list()
