from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import fitz
import pytest

from paperdoc import PageImage
from papernarrator.items import ItemType, Label, SpecialItem, TextItem, make_item
from papernarrator.llm import CompletionBackend
from papernarrator.storage import LocalBlobStore
from papernarrator.tts import BaseTTSEngine


# ---------------------------------------------------------------------------
# PDFs and pages
# ---------------------------------------------------------------------------


def build_pdf(pages: List[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page(width=595, height=842)
        page.insert_text((72, 72), text, fontsize=12)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture()
def pdf_factory() -> Callable[..., bytes]:
    def _create(*texts: str) -> bytes:
        return build_pdf(list(texts) or ["A short paper."])

    return _create


@pytest.fixture()
def sample_pdf() -> bytes:
    return build_pdf(["A Study of Things", "Results and references"])


@pytest.fixture()
def page_images(tmp_path: Path) -> List[PageImage]:
    return [PageImage(n, tmp_path / f"page_{n:03d}.png", 100, 140) for n in (1, 2, 3)]


# ---------------------------------------------------------------------------
# Completion backend
# ---------------------------------------------------------------------------


@dataclass
class Call:
    schema: type
    system_prompt: str
    user_prompt: str
    images: List[Path] = field(default_factory=list)
    temperature: float = 0.0
    few_shot_examples: List[Any] = field(default_factory=list)


class FakeCompletionBackend(CompletionBackend):
    """
    Returns scripted responses keyed by schema class.

    A response may be a model instance, an exception to raise, or a
    callable ``(user_prompt, images)`` returning either (or an awaitable).
    Schemas without a response fail every attempt.
    """

    def __init__(self, responses: Optional[Dict[type, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Call] = []

    def calls_for(self, schema: type) -> List[Call]:
        return [c for c in self.calls if c.schema is schema]

    async def _complete_once(
        self,
        system_prompt,
        user_prompt,
        schema,
        images,
        max_output_tokens,
        few_shot_examples,
        temperature,
    ):
        self.calls.append(
            Call(schema, system_prompt, user_prompt, list(images), temperature, list(few_shot_examples))
        )
        if schema not in self.responses:
            raise RuntimeError(f"no scripted response for {schema.__name__}")
        response = self.responses[schema]
        if callable(response):
            response = response(user_prompt, images)
        if inspect.isawaitable(response):
            response = await response
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def make_backend() -> Callable[..., FakeCompletionBackend]:
    return FakeCompletionBackend


# ---------------------------------------------------------------------------
# TTS engine
# ---------------------------------------------------------------------------


class FakeEngine(BaseTTSEngine):
    """Silent speech, 10 ms per character, recording every call."""

    SECONDS_PER_CHAR = 0.01

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.spoken: List[tuple] = []

    @property
    def sample_rate(self) -> int:
        return 24000

    @property
    def sample_width(self) -> int:
        return 2

    @property
    def channels(self) -> int:
        return 1

    def synthesize(self, text, voice=None, speed_factor=1.0) -> bytes:
        if self.fail_on and self.fail_on in text:
            raise RuntimeError("synthesis failed")
        self.spoken.append((text, voice))
        return self.generate_silence(len(text) * self.SECONDS_PER_CHAR)


@pytest.fixture()
def engine() -> FakeEngine:
    return FakeEngine()


# ---------------------------------------------------------------------------
# Items and storage
# ---------------------------------------------------------------------------


@pytest.fixture()
def text_item() -> Callable[..., TextItem]:
    def _create(content: str, page: int = 1, item_type: ItemType = ItemType.TEXT, **fields) -> TextItem:
        return make_item(item_type, content, page, **fields)

    return _create


@pytest.fixture()
def special_item() -> Callable[..., SpecialItem]:
    def _create(
        item_type: ItemType,
        content: str,
        page: int = 1,
        label: Optional[Label] = None,
    ) -> SpecialItem:
        return make_item(item_type, content, page, label=label)

    return _create


@pytest.fixture()
def store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "store")


# ---------------------------------------------------------------------------
# A scripted two-page paper
# ---------------------------------------------------------------------------


def scripted_paper_responses() -> Dict[type, Any]:
    from papernarrator.extraction.authors import AuthorModel, TitleAndAuthors
    from papernarrator.extraction.special import LabelModel, TableSummary
    from papernarrator.extraction.vision import ExtractedItem, PageExtraction

    pages = {
        "page_001.png": [
            ("main_title", "A Study of Things"),
            ("author_info", "Ann Lee1, Bo Chen1 1MIT"),
            ("abstract_heading", "Abstract"),
            ("abstract_content", "We study things."),
            ("heading", "Results"),
            ("text", "Table 1 shows large gains."),
        ],
        "page_002.png": [
            ("table_rows", "model | score\nA | 1\nB | 2"),
            ("references_heading", "References"),
            ("references_item", "Smith, J. (2020). Things."),
        ],
    }

    def extract(prompt, images):
        return PageExtraction(
            items=[ExtractedItem(type=t, content=c) for t, c in pages[Path(images[0]).name]]
        )

    return {
        PageExtraction: extract,
        TableSummary: TableSummary(
            label=LabelModel(label_type="Table", label_number="1", panel_number="unlabeled"),
            summary="Model B scores twice as high as model A.",
        ),
        TitleAndAuthors: TitleAndAuthors(
            main_title="A Study of Things",
            authors=[
                AuthorModel(author_name="Ann Lee", affiliation="MIT"),
                AuthorModel(author_name="Bo Chen", affiliation="MIT"),
            ],
            month_mm="03",
            year_yyyy="2024",
        ),
    }


@pytest.fixture()
def paper_backend() -> FakeCompletionBackend:
    return FakeCompletionBackend(scripted_paper_responses())


@pytest.fixture()
def wav_config():
    from papernarrator.pipeline import NarratorConfig

    return NarratorConfig(audio_format="wav", retries=1)
