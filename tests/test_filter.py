from __future__ import annotations

from typing import List

from papernarrator.items import Item, ItemType, make_item
from papernarrator.markup import wrap_heading
from papernarrator.script import filter_items, mark_reference_sections
from papernarrator.script.filter import END_OF_MAIN_PAPER, END_OF_PAPER


def _paper(with_appendix: bool = False) -> List[Item]:
    items = [
        make_item(ItemType.MAIN_TITLE, "A Study of Things", 1),
        make_item(ItemType.META_OR_PUBLICATION_INFO, "Journal of Things, vol. 3", 1),
        make_item(ItemType.ABSTRACT_HEADING, wrap_heading("Abstract"), 1),
        make_item(ItemType.ABSTRACT_CONTENT, "We study things.", 1),
        make_item(ItemType.HEADING, wrap_heading("Introduction"), 1),
        make_item(ItemType.TEXT, "Things matter.", 2),
        make_item(ItemType.FOOTNOTES, "1 A footnote.", 2),
        make_item(ItemType.HEADING, wrap_heading("Acknowledgements"), 3),
        make_item(ItemType.TEXT, "We thank our funders.", 3),
        make_item(ItemType.HEADING, wrap_heading("References"), 3),
        make_item(ItemType.REFERENCES_ITEM, "Smith, J. (2020). Things.", 3),
    ]
    if with_appendix:
        items += [
            make_item(ItemType.HEADING, wrap_heading("Appendix A"), 4),
            make_item(ItemType.TEXT, "Extra proofs.", 4),
        ]
    return items


def test_mark_reference_sections_retypes_and_inserts_marker() -> None:
    marked = mark_reference_sections(_paper())

    types = [it.type for it in marked]
    assert ItemType.ACKNOWLEDGEMENTS_HEADING in types
    assert ItemType.REFERENCES_HEADING in types
    assert types[-1] == ItemType.END_MARKER
    assert marked[-1].page == 3
    assert marked[-1].content == END_OF_PAPER


def test_only_last_references_heading_is_kept() -> None:
    items = [
        make_item(ItemType.REFERENCES_HEADING, "References", 2),
        make_item(ItemType.TEXT, "Body.", 2),
        make_item(ItemType.REFERENCES_HEADING, "References", 5),
        make_item(ItemType.REFERENCES_ITEM, "Doe 2019.", 5),
    ]

    marked = mark_reference_sections(items)

    assert marked[0].type == ItemType.STRAY_REFERENCES_HEADING
    assert marked[2].type == ItemType.REFERENCES_HEADING
    assert marked[4].type == ItemType.END_MARKER


def test_no_marker_without_references() -> None:
    items = [make_item(ItemType.TEXT, "Only text.", 1)]
    marked = mark_reference_sections(items)
    assert all(it.type != ItemType.END_MARKER for it in marked)


def test_filter_drops_front_matter_and_back_sections() -> None:
    kept = filter_items(mark_reference_sections(_paper()))
    contents = [it.content for it in kept]

    assert [it.type for it in kept] == [
        ItemType.MAIN_TITLE,
        ItemType.ABSTRACT_HEADING,
        ItemType.ABSTRACT_CONTENT,
        ItemType.HEADING,
        ItemType.TEXT,
        ItemType.END_MARKER,
    ]
    assert "Journal of Things, vol. 3" not in contents
    assert "We thank our funders." not in contents
    assert "1 A footnote." not in contents
    assert kept[-1].content == END_OF_PAPER


def test_filter_announces_appendix_after_end_marker() -> None:
    kept = filter_items(mark_reference_sections(_paper(with_appendix=True)))

    marker = next(it for it in kept if it.type == ItemType.END_MARKER)
    assert marker.content == END_OF_MAIN_PAPER
    assert kept[-1].content == "Extra proofs."


def test_filter_without_abstract_keeps_title_in_body() -> None:
    items = [
        make_item(ItemType.MAIN_TITLE, "Untitled Note", 1),
        make_item(ItemType.MAIN_TITLE, "Untitled Note", 2),
        make_item(ItemType.TEXT, "Body text.", 1),
        make_item(ItemType.PAGE_NUMBER, "1", 1),
        make_item(ItemType.TEXT, "[break0.4]", 1),
    ]

    kept = filter_items(items)

    assert [it.content for it in kept] == ["Untitled Note", "Body text."]


def test_filter_recognizes_plain_abstract_heading() -> None:
    items = [
        make_item(ItemType.AUTHOR_INFO, "Ann, MIT", 1),
        make_item(ItemType.HEADING, "Abstract", 1),
        make_item(ItemType.TEXT, "Summary of the work.", 1),
    ]

    kept = filter_items(items)

    assert [it.type for it in kept] == [ItemType.ABSTRACT_HEADING, ItemType.TEXT]


def test_math_between_endnotes_is_dropped() -> None:
    items = [
        make_item(ItemType.TEXT, "Body.", 1),
        make_item(ItemType.ENDNOTES_ITEM, "1 Note.", 9),
        make_item(ItemType.MATH, "x = y", 9),
        make_item(ItemType.ENDNOTES_ITEM, "2 Note.", 9),
        make_item(ItemType.MATH, "a + b", 9),
    ]

    kept = filter_items(items)

    assert [it.content for it in kept] == ["Body.", "a + b"]
