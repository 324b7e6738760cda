"""
Summaries for figures, tables and code.

Every special item gets one type-specific completion with its page image
and the other items on its page as context.  The model returns the
item's label (``Figure 3``, panel ``b``) and a listener-oriented summary
that replaces the raw content.  A failed summary keeps the raw content
and leaves the item unlabeled, so the repositioner leaves it in place.

Multi-page tables and figures split across panels come back as several
items with the same label; :func:`merge_duplicate_labels` folds them into
the first occurrence.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Type

from pydantic import BaseModel

from paperdoc import PageImage
from papernarrator.errors import RetriesExhaustedError
from papernarrator.items import UNLABELED, Item, ItemType, Label, SpecialItem
from papernarrator.llm import CompletionBackend, FewShotExample, run_in_batches

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class LabelModel(BaseModel):
    label_type: str
    label_number: str
    panel_number: str

    def to_label(self) -> Label:
        return Label(
            label_type=self.label_type.strip(),
            label_number=self.label_number.strip() or UNLABELED,
            panel_number=self.panel_number.strip(),
        )


class FigureSummary(BaseModel):
    label: LabelModel
    summary: str


class TableSummary(BaseModel):
    label: LabelModel
    summary: str


class CodeSummary(BaseModel):
    label: LabelModel
    title: str
    summary: str


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

FIGURE_PROMPT = """Write a detailed and effective summary of the figure.

Every summary must cover three things, without naming them explicitly:
1. A physical description of the image.
2. A description of the content of the figure.
3. Accurate inferences and conclusions from the content of the figure.

Extract the label type and label number shown on the page (for example "Figure 3"). This is very important: look for cues around the figure and use your best judgement. Possible label types are Figure, Chart, Image and so on. Add the panel number if the figure has panels, otherwise set panel_number to "unlabeled".

If there is no label or label number, set label_type to "Image" and label_number to "unlabeled".

Do not use markdown. The user is going to listen to the output and cannot see the figure."""

TABLE_PROMPT = """Write a concise and effective summary of the table. Summarize the size of the changes, effects, estimates or results in the table. Be very accurate and get the patterns right; use the page context and any notes below the table. The summary should capture the main point of the table. Use as few numbers as possible; the user cannot see the table and will only hear your summary.

Extract the label "Table X" where X is the table number shown on the page. This is very important: look for cues around the table. Add the panel number being summarized if it is mentioned, otherwise set panel_number to "unlabeled". A table that is part of a figure and labeled as a figure should be labeled as a figure.

Do not use markdown."""

CODE_PROMPT = """Summarize the given code or algorithm. Explain what it does in simple terms, including its input and output. Do not include any code syntax in the summary.

Also extract the title of the algorithm or code block. If no title is mentioned, write an appropriate one.

Code blocks are usually unlabeled: then set label_type to "", label_number to "unlabeled" and panel_number to "unlabeled". If the block is labeled (for example "Algorithm 2" or "Figure 4"), extract that label."""


@dataclass(frozen=True)
class _SummaryKind:
    prompt: str
    schema: Type[BaseModel]
    noun: str
    temperature: float
    request: str


_KINDS: Dict[ItemType, _SummaryKind] = {
    ItemType.FIGURE_IMAGE: _SummaryKind(FIGURE_PROMPT, FigureSummary, "summary", 0.4, "Figure to summarize"),
    ItemType.TABLE_ROWS: _SummaryKind(TABLE_PROMPT, TableSummary, "summary", 0.2, "Table to summarize"),
    ItemType.CODE_OR_ALGORITHM: _SummaryKind(
        CODE_PROMPT, CodeSummary, "code explanation", 0.3, "Code or algorithm to summarize"
    ),
}

MERGEABLE_TYPES = tuple(_KINDS)


def format_summary(label: Label, noun: str, summary: str) -> str:
    """``"Table 2 Panel b summary: ..."``; empty label parts are skipped."""
    parts = [label.label_string]
    if label.has_panel:
        parts.append(f"Panel {label.panel_number.strip()}")
    parts.append(f"{noun}:")
    return f"{' '.join(p for p in parts if p)} {summary.strip()}"


def _page_context(items: Sequence[Item], page: int, current: Item) -> str:
    return json.dumps(
        [
            {"type": it.type.value, "content": it.content}
            for it in items
            if it.page == page and it is not current
        ]
    )


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


async def summarize_special_items(
    backend: CompletionBackend,
    items: List[Item],
    pages: Sequence[PageImage],
    figure_examples: Sequence[FewShotExample] = (),
    batch_size: int = 20,
    retries: int = 3,
    disable_tqdm: bool = True,
) -> int:
    """
    Summarize and label every special item in place.

    Returns:
        Number of items left unsummarized after a failed call.
    """
    images = {p.page_number: p.path for p in pages}
    targets = [it for it in items if isinstance(it, SpecialItem) and it.type in _KINDS]

    async def _summarize(item: SpecialItem, _index: int) -> bool:
        kind = _KINDS[item.type]
        user_prompt = (
            f"{kind.request} on this page:\n"
            f"{json.dumps({'type': item.type.value, 'content': item.content})}\n\n"
            f"Page context:\n{_page_context(items, item.page, item)}"
        )
        image = images.get(item.page)
        try:
            result = await backend.complete(
                kind.prompt,
                user_prompt,
                kind.schema,
                images=[image] if image else [],
                retries=retries,
                few_shot_examples=figure_examples if item.type == ItemType.FIGURE_IMAGE else (),
                temperature=kind.temperature,
            )
        except RetriesExhaustedError as e:
            logger.warning(
                "Could not summarize %s on page %d, keeping raw content: %s",
                item.type.value,
                item.page,
                e,
            )
            item.label = None
            return False

        item.label = result.label.to_label()
        if isinstance(result, CodeSummary):
            item.title = result.title.strip()
        item.content = format_summary(item.label, kind.noun, result.summary)
        logger.debug("Summarized %s on page %d", item.label.label_string or item.type.value, item.page)
        return True

    outcomes = await run_in_batches(
        targets,
        _summarize,
        batch_size=batch_size,
        desc="Summarizing figures/tables/code",
        disable_tqdm=disable_tqdm,
    )
    failures = outcomes.count(False)
    logger.info("Summarized %d special items (%d failed)", len(targets) - failures, failures)
    return failures


def merge_duplicate_labels(items: List[Item]) -> List[Item]:
    """
    Fold special items sharing a numbered label into the first one.

    Contents are joined with a newline and page spans are unioned; the
    panel is cleared since the merged item covers every panel.  Unlabeled
    and unnumbered items are never merged.

    Returns:
        A new list without the merged-away items.
    """
    first_by_key: Dict[str, SpecialItem] = {}
    result: List[Item] = []

    for item in items:
        label: Optional[Label] = getattr(item, "label", None)
        if (
            not isinstance(item, SpecialItem)
            or item.type not in MERGEABLE_TYPES
            or label is None
            or not label.is_numbered
        ):
            result.append(item)
            continue

        first = first_by_key.get(label.key)
        if first is None:
            first_by_key[label.key] = item
            result.append(item)
            continue

        first.content = f"{first.content}\n{item.content}"
        first.page_span = sorted(set(first.page_span) | set(item.page_span))
        if first.label is not None:
            first.label.panel_number = ""
        logger.debug("Merged duplicate %s from page %d", label.label_string, item.page)

    return result
