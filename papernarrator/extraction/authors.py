"""
Title, author and date extraction from the first pages of a paper.

The raw ``author_info`` items are usually fragments (names on one line,
superscript affiliations on the next).  One completion over the first
page images returns a clean author list, which is rendered into a single
spoken line replacing the first ``author_info`` item.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from pydantic import BaseModel

from paperdoc import PageImage
from papernarrator.errors import RetriesExhaustedError
from papernarrator.items import Item, ItemType, retype
from papernarrator.llm import CompletionBackend
from papernarrator.markup import AUTHOR_PAUSE, pause

logger = logging.getLogger(__name__)

NO_TITLE = "NoTitleDetected"

TITLE_AND_AUTHORS_PROMPT = """Extract the main title, the authors and the publication month and year of the document.

For the main title: use your judgement to accurately determine it.

For the authors: keep only the author names and affiliations. If the affiliation is not available for an author leave it empty. Do not repeat the same author or affiliation.

Give the month as MM and the year as YYYY. If the month or year is missing leave it empty."""


class AuthorModel(BaseModel):
    author_name: str
    affiliation: str


class TitleAndAuthors(BaseModel):
    main_title: str
    authors: List[AuthorModel]
    month_mm: str
    year_yyyy: str


@dataclass
class PaperMetadata:
    title: str = NO_TITLE
    authors: List[Dict[str, str]] = field(default_factory=list)
    month: str = ""
    year: str = ""

    @property
    def date(self) -> str:
        """``MM/YYYY``, ``YYYY`` or empty."""
        if self.month and self.year:
            return f"{self.month}/{self.year}"
        return self.year

    @property
    def short_authors(self) -> str:
        """``First et al.`` for several authors, the sole name otherwise."""
        if not self.authors:
            return ""
        first = self.authors[0]["author_name"] or "Unknown Author"
        return f"{first} et al." if len(self.authors) > 1 else first


def compile_author_info(authors: Sequence[Dict[str, str]], max_authors: int = 5) -> str:
    """
    Render the author list as one spoken line.

    The first *max_authors* authors are grouped by affiliation in order of
    first appearance; longer lists are prefixed with the total count.
    """
    groups: "OrderedDict[str, List[str]]" = OrderedDict()
    for author in authors[:max_authors]:
        groups.setdefault(author.get("affiliation", "").strip(), []).append(
            author["author_name"].strip()
        )

    rendered = []
    for affiliation, names in groups.items():
        line = f"{pause(AUTHOR_PAUSE)}{', '.join(names)}"
        if affiliation:
            line += f" from {affiliation}"
        rendered.append(line)
    compiled = ", ".join(rendered)

    if len(authors) > max_authors:
        compiled = f"There are {len(authors)} authors, including {compiled}"
    return compiled


def apply_author_info(items: List[Item], metadata: PaperMetadata, max_authors: int = 5) -> List[Item]:
    """
    Replace the first ``author_info`` item with the compiled author line.

    Nothing changes when the paper has no ``author_info`` item or no
    authors were extracted.  Returns the (possibly updated) list.
    """
    if not metadata.authors:
        return items
    for i, item in enumerate(items):
        if item.type == ItemType.AUTHOR_INFO:
            improved = retype(item, ItemType.IMPROVED_AUTHOR_INFO)
            improved.content = compile_author_info(metadata.authors, max_authors)
            items[i] = improved
            break
    return items


async def extract_title_and_authors(
    backend: CompletionBackend,
    items: Sequence[Item],
    pages: Sequence[PageImage],
    title_pages: int = 5,
    retries: int = 3,
) -> PaperMetadata:
    """
    Ask for title, authors and date.

    Failure is not fatal: the title falls back to ``NoTitleDetected`` and
    the author list stays empty.
    """
    first_pages = list(pages)[:title_pages]
    page_numbers = {p.page_number for p in first_pages}

    def _collect(item_type: ItemType) -> str:
        return "\n\n".join(
            it.content for it in items if it.type == item_type and it.page in page_numbers
        )

    user_prompt = (
        f"Title candidates from the first {title_pages} pages:\n{_collect(ItemType.MAIN_TITLE)}\n\n"
        f"Author info:\n{_collect(ItemType.AUTHOR_INFO)}"
    )
    try:
        result = await backend.complete(
            TITLE_AND_AUTHORS_PROMPT,
            user_prompt,
            TitleAndAuthors,
            images=[p.path for p in first_pages],
            retries=retries,
            temperature=0.2,
        )
    except RetriesExhaustedError as e:
        logger.warning("Title/author extraction failed, using defaults: %s", e)
        return PaperMetadata()

    metadata = PaperMetadata(
        title=result.main_title.strip() or NO_TITLE,
        authors=[
            {"author_name": a.author_name.strip(), "affiliation": a.affiliation.strip()}
            for a in result.authors
            if a.author_name.strip()
        ],
        month=result.month_mm.strip(),
        year=result.year_yyyy.strip(),
    )
    logger.info(
        "Title: %s | %d authors | date: %s",
        metadata.title,
        len(metadata.authors),
        metadata.date or "-",
    )
    return metadata
