from __future__ import annotations

import asyncio
from typing import List

from papernarrator.extraction import (
    PaperMetadata,
    apply_author_info,
    compile_author_info,
    extract_pages,
    extract_title_and_authors,
    merge_duplicate_labels,
    postprocess_page_items,
    select_relevant_pages,
    summarize_special_items,
)
from papernarrator.extraction.authors import NO_TITLE, AuthorModel, TitleAndAuthors
from papernarrator.extraction.relevance import PageRelevance
from papernarrator.extraction.special import (
    CodeSummary,
    FigureSummary,
    LabelModel,
    TableSummary,
    format_summary,
)
from papernarrator.extraction.vision import ExtractedItem, PageExtraction
from papernarrator.items import UNLABELED, ItemType, Label, SpecialItem, TextItem, make_item
from papernarrator.llm import FewShotExample
from papernarrator.script.text_preprocessor import URL_PLACEHOLDER


# ---------------------------------------------------------------------------
# Page extraction
# ---------------------------------------------------------------------------


def test_postprocess_merges_math_and_cleans_text() -> None:
    pairs = [
        ("heading", "Method"),
        ("text", "Code is at https://example.org/repo today"),
        ("math", "a = b"),
        ("math", "c = d"),
        ("text", "Next."),
        ("math", "e"),
    ]

    items = postprocess_page_items(pairs, page=3)

    assert [it.type for it in items] == [
        ItemType.HEADING,
        ItemType.TEXT,
        ItemType.MATH,
        ItemType.TEXT,
        ItemType.MATH,
    ]
    assert items[0].content == "[break0.7]Method[break0.7]"
    assert items[1].content == f"Code is at {URL_PLACEHOLDER} today"
    assert items[2].content == "a = b c = d"
    assert isinstance(items[2], TextItem) and items[2].math_symbol_frequency == 5
    assert all(it.page == 3 for it in items)


def test_extract_pages_keeps_page_order(make_backend, page_images) -> None:
    async def respond(prompt, images):
        page = int(images[0].stem.split("_")[1])
        # the first page answers last
        await asyncio.sleep(0.001 * (4 - page))
        return PageExtraction(items=[ExtractedItem(type="text", content=f"Page {page} text.")])

    backend = make_backend({PageExtraction: respond})

    items = asyncio.run(extract_pages(backend, page_images))

    assert [it.content for it in items] == ["Page 1 text.", "Page 2 text.", "Page 3 text."]
    assert [it.page for it in items] == [1, 2, 3]
    assert all(call.user_prompt == "" for call in backend.calls)


def test_relevance_keeps_relevant_and_failed_pages(make_backend, page_images) -> None:
    def respond(prompt, images):
        if images[0].name == "page_002.png":
            return PageRelevance(is_relevant=False)
        if images[0].name == "page_003.png":
            return RuntimeError("flaky")
        return PageRelevance(is_relevant=True)

    backend = make_backend({PageRelevance: respond})

    kept = asyncio.run(select_relevant_pages(backend, page_images, retries=1))

    assert [p.page_number for p in kept] == [1, 3]


def test_relevance_never_drops_every_page(make_backend, page_images) -> None:
    backend = make_backend({PageRelevance: PageRelevance(is_relevant=False)})

    kept = asyncio.run(select_relevant_pages(backend, page_images))

    assert kept == page_images


# ---------------------------------------------------------------------------
# Special items
# ---------------------------------------------------------------------------


def test_format_summary() -> None:
    assert format_summary(Label("Table", "2", "b"), "summary", " Big. ") == "Table 2 Panel b summary: Big."
    assert format_summary(Label("Figure", "1"), "summary", "Up.") == "Figure 1 summary: Up."
    assert (
        format_summary(Label("", UNLABELED, UNLABELED), "code explanation", "Sorts.")
        == "code explanation: Sorts."
    )


def test_summaries_label_items(make_backend, page_images, special_item) -> None:
    figure = special_item(ItemType.FIGURE_IMAGE, "raw figure", page=1)
    code = special_item(ItemType.CODE_OR_ALGORITHM, "for x in y: pass", page=2)
    text = make_item(ItemType.TEXT, "Context.", 1)
    backend = make_backend(
        {
            FigureSummary: FigureSummary(
                label=LabelModel(label_type="Figure", label_number="4", panel_number="unlabeled"),
                summary="A rising line.",
            ),
            CodeSummary: CodeSummary(
                label=LabelModel(label_type="Algorithm", label_number="1", panel_number=""),
                title="Greedy search",
                summary="Loops over items.",
            ),
        }
    )

    failures = asyncio.run(summarize_special_items(backend, [figure, text, code], page_images))

    assert failures == 0
    assert figure.label == Label("Figure", "4", "unlabeled")
    assert figure.content == "Figure 4 summary: A rising line."
    assert code.title == "Greedy search"
    assert code.content == "Algorithm 1 code explanation: Loops over items."
    figure_call = backend.calls_for(FigureSummary)[0]
    assert "Context." in figure_call.user_prompt
    assert figure_call.images == [page_images[0].path]


def test_only_figures_receive_few_shot_examples(make_backend, page_images, special_item, tmp_path) -> None:
    examples = [FewShotExample(tmp_path / "bar_chart.png", '{"summary": "Bars."}')]
    figure = special_item(ItemType.FIGURE_IMAGE, "raw figure", page=1)
    table = special_item(ItemType.TABLE_ROWS, "a | b", page=1)
    code = special_item(ItemType.CODE_OR_ALGORITHM, "for x in y: pass", page=2)
    label = LabelModel(label_type="Table", label_number="1", panel_number="")
    backend = make_backend(
        {
            FigureSummary: FigureSummary(label=label, summary="Up."),
            TableSummary: TableSummary(label=label, summary="Rows."),
            CodeSummary: CodeSummary(label=label, title="Loop", summary="Loops."),
        }
    )

    asyncio.run(
        summarize_special_items(backend, [figure, table, code], page_images, figure_examples=examples)
    )

    assert backend.calls_for(FigureSummary)[0].few_shot_examples == examples
    assert backend.calls_for(TableSummary)[0].few_shot_examples == []
    assert backend.calls_for(CodeSummary)[0].few_shot_examples == []


def test_failed_summary_keeps_raw_content(make_backend, page_images, special_item) -> None:
    table = special_item(ItemType.TABLE_ROWS, "a | b", page=2, label=Label("Table", "9"))
    backend = make_backend({TableSummary: RuntimeError("refused")})

    failures = asyncio.run(summarize_special_items(backend, [table], page_images, retries=2))

    assert failures == 1
    assert table.content == "a | b"
    assert table.label is None


def test_merge_duplicate_labels(special_item) -> None:
    first = special_item(ItemType.TABLE_ROWS, "Part one.", page=3, label=Label("Table", "1", "a"))
    text = make_item(ItemType.TEXT, "Between.", 3)
    second = special_item(ItemType.TABLE_ROWS, "Part two.", page=4, label=Label("table", "1", "b"))
    image_a = special_item(ItemType.FIGURE_IMAGE, "Logo.", page=1, label=Label("Image", UNLABELED))
    image_b = special_item(ItemType.FIGURE_IMAGE, "Logo.", page=2, label=Label("Image", UNLABELED))

    merged = merge_duplicate_labels([first, text, second, image_a, image_b])

    assert merged == [first, text, image_a, image_b]
    assert first.content == "Part one.\nPart two."
    assert first.page_span == [3, 4]
    assert first.label.panel_number == ""


# ---------------------------------------------------------------------------
# Title and authors
# ---------------------------------------------------------------------------


def _authors(n: int) -> List[dict]:
    return [{"author_name": f"Author {i}", "affiliation": "MIT" if i % 2 else ""} for i in range(n)]


def test_compile_author_info_groups_by_affiliation() -> None:
    authors = [
        {"author_name": "Ann Lee", "affiliation": "MIT"},
        {"author_name": "Bo Chen", "affiliation": "MIT"},
        {"author_name": "Cy Diaz", "affiliation": ""},
    ]
    assert compile_author_info(authors) == "[break0.3]Ann Lee, Bo Chen from MIT, [break0.3]Cy Diaz"


def test_compile_author_info_caps_long_lists() -> None:
    compiled = compile_author_info(_authors(7), max_authors=5)

    assert compiled.startswith("There are 7 authors, including ")
    assert "Author 4" in compiled
    assert "Author 5" not in compiled


def test_paper_metadata_properties() -> None:
    meta = PaperMetadata(title="T", authors=_authors(3), month="03", year="2024")
    assert meta.short_authors == "Author 0 et al."
    assert meta.date == "03/2024"
    assert PaperMetadata(authors=_authors(1), year="2020").short_authors == "Author 0"
    assert PaperMetadata(year="2020").date == "2020"
    assert PaperMetadata(month="03").date == ""
    assert PaperMetadata().short_authors == ""


def test_apply_author_info_replaces_first_author_item() -> None:
    first = make_item(ItemType.AUTHOR_INFO, "Ann^1 Bo^2", 1)
    second = make_item(ItemType.AUTHOR_INFO, "1 MIT 2 CMU", 1)
    meta = PaperMetadata(authors=[{"author_name": "Ann", "affiliation": "MIT"}])

    items = apply_author_info([first, second], meta)

    assert items[0].type == ItemType.IMPROVED_AUTHOR_INFO
    assert items[0].content == "[break0.3]Ann from MIT"
    assert items[1].type == ItemType.AUTHOR_INFO
    assert apply_author_info([second], PaperMetadata())[0].content == "1 MIT 2 CMU"


def test_extract_title_and_authors(make_backend, page_images) -> None:
    items = [
        make_item(ItemType.MAIN_TITLE, "Deep Things", 1),
        make_item(ItemType.AUTHOR_INFO, "Ann Lee (MIT)", 1),
    ]
    backend = make_backend(
        {
            TitleAndAuthors: TitleAndAuthors(
                main_title=" Deep Things ",
                authors=[
                    AuthorModel(author_name="Ann Lee", affiliation="MIT"),
                    AuthorModel(author_name=" ", affiliation="Nowhere"),
                ],
                month_mm="",
                year_yyyy="2023",
            )
        }
    )

    meta = asyncio.run(extract_title_and_authors(backend, items, page_images, title_pages=2))

    assert meta.title == "Deep Things"
    assert meta.authors == [{"author_name": "Ann Lee", "affiliation": "MIT"}]
    assert meta.date == "2023"
    call = backend.calls[0]
    assert "Deep Things" in call.user_prompt and "Ann Lee (MIT)" in call.user_prompt
    assert len(call.images) == 2


def test_extract_title_and_authors_failure_defaults(make_backend, page_images) -> None:
    meta = asyncio.run(extract_title_and_authors(make_backend(), [], page_images, retries=1))

    assert meta.title == NO_TITLE
    assert meta.authors == []
