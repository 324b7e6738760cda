"""
Data model for narration items.

An item is one semantic unit of the paper (a paragraph, a heading, a
figure, ...).  Items form a tagged union over :class:`ItemType`:

* :class:`TextItem`: prose and math that the text passes rewrite.
* :class:`SpecialItem`: figures, tables and code, summarized and labeled.
* :class:`PlainItem`: everything else (headings, titles, markers, noise).

:func:`make_item` picks the variant for a type and :func:`retype` moves an
item to a new type, rebuilding it if the variant changes.
"""

import copy
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional

UNLABELED = "unlabeled"


class ItemType(str, Enum):
    """Closed vocabulary of item types."""

    # Extraction vocabulary
    MAIN_TITLE = "main_title"
    TEXT = "text"
    HEADING = "heading"
    FIGURE_IMAGE = "figure_image"
    FIGURE_CAPTION_OR_HEADING = "figure_caption_or_heading"
    FIGURE_NOTE = "figure_note"
    NON_FIGURE_IMAGE = "non_figure_image"
    TABLE_ROWS = "table_rows"
    TABLE_DESCRIPTION_OR_HEADING = "table_description_or_heading"
    TABLE_NOTES = "table_notes"
    AUTHOR_INFO = "author_info"
    FOOTNOTES = "footnotes"
    META_OR_PUBLICATION_INFO = "meta_or_publication_info"
    REFERENCES_HEADING = "references_heading"
    REFERENCES_ITEM = "references_item"
    MATH = "math"
    TABLE_OF_CONTENTS_HEADING = "table_of_contents_heading"
    TABLE_OF_CONTENTS_ITEM = "table_of_contents_item"
    ABSTRACT_HEADING = "abstract_heading"
    ABSTRACT_CONTENT = "abstract_content"
    PAGE_NUMBER = "page_number"
    CODE_OR_ALGORITHM = "code_or_algorithm"
    ENDNOTES_ITEM = "endnotes_item"
    ENDNOTES_HEADING = "endnotes_heading"
    JEL_CLASSIFICATION = "JEL_classification"
    JSTOR_META_INFORMATION = "JSTOR_meta_information"
    CCS_CONCEPTS = "CCS_concepts"
    KEYWORDS = "keywords"
    ACKNOWLEDGEMENTS_HEADING = "acknowledgements_heading"
    ACKNOWLEDGEMENTS_CONTENT = "acknowledgements_content"
    REFERENCES_FORMAT_INFORMATION = "references_format_information"

    # Retyping vocabulary
    MATH_EQUATION_NUMBER = "math_equation_number"
    META_INFO = "meta_info"
    PUBLISHER_INFO = "publisher_info"
    FIGURE_HEADING = "figure_heading"
    FIGURE_CAPTION = "figure_caption"
    TABLE_HEADING = "table_heading"

    # Derived by the pipeline
    IMPROVED_AUTHOR_INFO = "improved_author_info"
    STRAY_REFERENCES_HEADING = "stray_references_heading"
    END_MARKER = "end_marker"

    @property
    def is_heading(self) -> bool:
        return "heading" in self.value


TEXT_TYPES = frozenset({ItemType.TEXT, ItemType.ABSTRACT_CONTENT, ItemType.MATH})
SPECIAL_TYPES = frozenset(
    {ItemType.FIGURE_IMAGE, ItemType.TABLE_ROWS, ItemType.CODE_OR_ALGORITHM}
)

# Types a page-extraction call may emit
EXTRACTION_TYPES = (
    ItemType.MAIN_TITLE,
    ItemType.TEXT,
    ItemType.HEADING,
    ItemType.FIGURE_IMAGE,
    ItemType.FIGURE_CAPTION_OR_HEADING,
    ItemType.FIGURE_NOTE,
    ItemType.NON_FIGURE_IMAGE,
    ItemType.TABLE_ROWS,
    ItemType.TABLE_DESCRIPTION_OR_HEADING,
    ItemType.TABLE_NOTES,
    ItemType.AUTHOR_INFO,
    ItemType.FOOTNOTES,
    ItemType.META_OR_PUBLICATION_INFO,
    ItemType.REFERENCES_HEADING,
    ItemType.REFERENCES_ITEM,
    ItemType.MATH,
    ItemType.TABLE_OF_CONTENTS_HEADING,
    ItemType.TABLE_OF_CONTENTS_ITEM,
    ItemType.ABSTRACT_HEADING,
    ItemType.ABSTRACT_CONTENT,
    ItemType.PAGE_NUMBER,
    ItemType.CODE_OR_ALGORITHM,
    ItemType.ENDNOTES_ITEM,
    ItemType.ENDNOTES_HEADING,
    ItemType.JEL_CLASSIFICATION,
    ItemType.JSTOR_META_INFORMATION,
    ItemType.CCS_CONCEPTS,
    ItemType.KEYWORDS,
    ItemType.ACKNOWLEDGEMENTS_HEADING,
    ItemType.ACKNOWLEDGEMENTS_CONTENT,
    ItemType.REFERENCES_FORMAT_INFORMATION,
)

# Types the retyping call may assign
RETYPE_TYPES = (
    ItemType.MAIN_TITLE,
    ItemType.AUTHOR_INFO,
    ItemType.TEXT,
    ItemType.HEADING,
    ItemType.FIGURE_IMAGE,
    ItemType.TABLE_ROWS,
    ItemType.ABSTRACT_CONTENT,
    ItemType.ABSTRACT_HEADING,
    ItemType.MATH,
    ItemType.MATH_EQUATION_NUMBER,
    ItemType.CODE_OR_ALGORITHM,
    ItemType.ACKNOWLEDGEMENTS_HEADING,
    ItemType.ACKNOWLEDGEMENTS_CONTENT,
    ItemType.REFERENCES_HEADING,
    ItemType.REFERENCES_ITEM,
    ItemType.REFERENCES_FORMAT_INFORMATION,
    ItemType.ENDNOTES_ITEM,
    ItemType.ENDNOTES_HEADING,
    ItemType.JEL_CLASSIFICATION,
    ItemType.CCS_CONCEPTS,
    ItemType.KEYWORDS,
    ItemType.FOOTNOTES,
    ItemType.META_INFO,
    ItemType.PUBLISHER_INFO,
    ItemType.NON_FIGURE_IMAGE,
    ItemType.FIGURE_HEADING,
    ItemType.FIGURE_CAPTION,
    ItemType.FIGURE_NOTE,
    ItemType.TABLE_HEADING,
    ItemType.TABLE_DESCRIPTION_OR_HEADING,
    ItemType.TABLE_NOTES,
    ItemType.PAGE_NUMBER,
    ItemType.TABLE_OF_CONTENTS_HEADING,
    ItemType.TABLE_OF_CONTENTS_ITEM,
)


# ---------------------------------------------------------------------------
# Labels and replacement records
# ---------------------------------------------------------------------------


@dataclass
class Label:
    """Identifier of a figure, table or code block (``Figure 3``, panel ``b``)."""

    label_type: str
    label_number: str = UNLABELED
    panel_number: str = ""

    @property
    def is_numbered(self) -> bool:
        return self.label_number.strip() not in ("", UNLABELED)

    @property
    def has_panel(self) -> bool:
        return self.panel_number.strip() not in ("", UNLABELED)

    @property
    def label_string(self) -> str:
        if self.is_numbered:
            return f"{self.label_type.strip()} {self.label_number.strip()}".strip()
        return self.label_type.strip()

    @property
    def key(self) -> str:
        """Normalized label string used for deduplication."""
        return self.label_string.lower()


@dataclass
class Replacement:
    """A proposed rewrite, kept whether or not it was accepted."""

    original_text: str
    transformed_text: str


# ---------------------------------------------------------------------------
# Item variants
# ---------------------------------------------------------------------------


@dataclass
class Item:
    type: ItemType
    content: str
    page: int
    page_span: List[int] = field(default_factory=list)
    audio_issues: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.page_span:
            self.page_span = [self.page]

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    def __repr__(self) -> str:
        preview = self.content[:50].replace("\n", " ")
        return f"{type(self).__name__}({self.type.value}, p{self.page}, '{preview}')"


@dataclass(repr=False)
class PlainItem(Item):
    pass


@dataclass(repr=False)
class TextItem(Item):
    has_citations: bool = False
    math_symbol_frequency: int = 0
    has_hyphenated_words: bool = False
    is_start_cut_off: bool = False
    is_end_cut_off: bool = False
    citation_replacement: Optional[Replacement] = None
    math_replacement: Optional[Replacement] = None
    hyphenation_replacement: Optional[Replacement] = None
    replaced_citations: bool = False
    optimized_math: bool = False


@dataclass(repr=False)
class SpecialItem(Item):
    label: Optional[Label] = None
    title: str = ""
    repositioned: bool = False


def variant_for(item_type: ItemType) -> type:
    if item_type in TEXT_TYPES:
        return TextItem
    if item_type in SPECIAL_TYPES:
        return SpecialItem
    return PlainItem


def make_item(item_type: ItemType, content: str, page: int, **fields) -> Item:
    """Build the variant matching *item_type*."""
    return variant_for(ItemType(item_type))(
        type=ItemType(item_type), content=content, page=page, **fields
    )


def retype(item: Item, new_type: ItemType) -> Item:
    """
    Return *item* moved to *new_type*.

    Mutates in place when the variant is unchanged, otherwise returns a
    fresh variant carrying the shared fields only.
    """
    new_type = ItemType(new_type)
    if isinstance(item, variant_for(new_type)):
        item.type = new_type
        return item
    return make_item(
        new_type,
        item.content,
        item.page,
        page_span=list(item.page_span),
        audio_issues=list(item.audio_issues),
    )


def is_end_cut_off(item: Item) -> bool:
    return isinstance(item, TextItem) and item.is_end_cut_off


# ---------------------------------------------------------------------------
# Arena
# ---------------------------------------------------------------------------


class ItemArena:
    """
    Ordered item container with identity lookup and explicit moves.

    Items are located by identity rather than equality, since two
    dataclass items with identical fields are still distinct units.
    """

    def __init__(self, items: Optional[List[Item]] = None):
        self._items: List[Item] = list(items or [])

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Item]:
        return iter(self._items)

    def __getitem__(self, index: int) -> Item:
        return self._items[index]

    def index_of(self, item: Item) -> int:
        for i, candidate in enumerate(self._items):
            if candidate is item:
                return i
        raise ValueError(f"{item!r} is not in the arena")

    def find(self, predicate: Callable[[Item], bool], start: int = 0) -> int:
        """Index of the first item at or after *start* matching *predicate*, or -1."""
        for i in range(max(start, 0), len(self._items)):
            if predicate(self._items[i]):
                return i
        return -1

    def insert(self, index: int, item: Item) -> None:
        self._items.insert(index, item)

    def remove_at(self, index: int) -> Item:
        return self._items.pop(index)

    def move(self, src: int, dst: int) -> None:
        """
        Move the item at *src* so it sits at *dst* in the list that
        remains after removing it.  *dst* past the end appends.
        """
        item = self._items.pop(src)
        self._items.insert(min(dst, len(self._items)), item)

    def to_list(self) -> List[Item]:
        return list(self._items)


def snapshot(items: List[Item]) -> List[Dict]:
    """JSON-ready deep copy of *items* for debugging artifacts."""
    return [copy.deepcopy(item.to_dict()) for item in items]
