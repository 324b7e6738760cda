"""Narration script passes: filtering, tagging, rewriting, and reordering."""

from .abbreviations import ABBREVIATIONS, Abbreviation, replace_known_abbreviations
from .filter import filter_items, mark_reference_sections
from .normalize import remove_citations, repair_hyphenation, verbalize_math
from .reposition import reposition_special_items
from .tagging import tag_items
from .text_preprocessor import add_pause_cues, tag_cut_offs

__all__ = [
    "ABBREVIATIONS",
    "Abbreviation",
    "add_pause_cues",
    "filter_items",
    "mark_reference_sections",
    "remove_citations",
    "repair_hyphenation",
    "replace_known_abbreviations",
    "reposition_special_items",
    "tag_cut_offs",
    "tag_items",
    "verbalize_math",
]
