"""Model-backed extraction stages: page items, retyping, summaries, authors."""

from .authors import PaperMetadata, apply_author_info, compile_author_info, extract_title_and_authors
from .relevance import select_relevant_pages
from .retype import retype_elements
from .special import merge_duplicate_labels, summarize_special_items
from .vision import extract_pages, postprocess_page_items

__all__ = [
    "PaperMetadata",
    "apply_author_info",
    "compile_author_info",
    "extract_pages",
    "extract_title_and_authors",
    "merge_duplicate_labels",
    "postprocess_page_items",
    "retype_elements",
    "select_relevant_pages",
    "summarize_special_items",
]
