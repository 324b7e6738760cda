"""
Optional pre-filter that drops pages without main content (journal
covers, publisher boilerplate, reference-only pages).
"""

import logging
from typing import List, Sequence

from pydantic import BaseModel

from paperdoc import PageImage
from papernarrator.errors import RetriesExhaustedError
from papernarrator.llm import CompletionBackend, run_in_batches

logger = logging.getLogger(__name__)

RELEVANCE_PROMPT = """Determine if the following page is relevant and contains on-topic information. If it contains meta information about the journal or publisher, or some other meta information, return false. For a research paper, anything that is not the main content of the paper is irrelevant. If the page contains references only, return false. However, if the page contains references and other information, return true. Accurately judge what is and what is not relevant."""


class PageRelevance(BaseModel):
    is_relevant: bool


async def select_relevant_pages(
    backend: CompletionBackend,
    pages: Sequence[PageImage],
    batch_size: int = 20,
    retries: int = 3,
    disable_tqdm: bool = True,
) -> List[PageImage]:
    """
    Keep the pages judged relevant, in order.

    A failed call counts as relevant.  If every page is judged irrelevant
    the input is returned unchanged rather than an empty document.
    """

    async def _judge(page: PageImage, _index: int) -> bool:
        try:
            result = await backend.complete(
                RELEVANCE_PROMPT,
                "",
                PageRelevance,
                images=[page.path],
                max_output_tokens=64,
                retries=retries,
                temperature=0.1,
            )
        except RetriesExhaustedError as e:
            logger.warning("Relevance check failed on page %d, keeping it: %s", page.page_number, e)
            return True
        logger.debug("Page %d relevant: %s", page.page_number, result.is_relevant)
        return result.is_relevant

    verdicts = await run_in_batches(
        list(pages),
        _judge,
        batch_size=batch_size,
        desc="Checking relevance",
        unit="page",
        disable_tqdm=disable_tqdm,
    )
    kept = [page for page, relevant in zip(pages, verdicts) if relevant]
    if not kept:
        logger.warning("Every page was judged irrelevant, keeping all %d", len(pages))
        return list(pages)

    logger.info("Relevance: kept %d of %d pages", len(kept), len(pages))
    return kept
