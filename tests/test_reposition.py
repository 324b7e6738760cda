from __future__ import annotations

from papernarrator.items import ItemType, Label, make_item
from papernarrator.script import replace_known_abbreviations, reposition_special_items, tag_cut_offs
from papernarrator.script.reposition import mention_patterns


def _contents(items):
    return [it.content for it in items]


def test_mention_patterns_match_aliases_and_not_longer_numbers() -> None:
    patterns = mention_patterns(Label("Figure", "1"))

    def mentioned(text: str) -> bool:
        return any(p.search(text) for p in patterns)

    assert mentioned("as shown in Fig. 1")
    assert mentioned("FIGURE 1b shows")
    assert not mentioned("see Figure 12")
    assert not mentioned("a configure 1 step")
    assert mention_patterns(Label("Image", "unlabeled")) == []


def test_table_moves_after_mentioning_paragraph(special_item) -> None:
    heading = make_item(ItemType.HEADING, "Results", 1)
    mention = make_item(ItemType.TEXT, "As Table 1 shows, gains are large.", 1)
    later = make_item(ItemType.TEXT, "Further discussion.", 2)
    table = special_item(ItemType.TABLE_ROWS, "Table 1 summary: gains.", page=5, label=Label("Table", "1"))

    result = reposition_special_items([heading, mention, later, table])

    assert _contents(result) == [
        "Results",
        "As Table 1 shows, gains are large.",
        "Table 1 summary: gains.",
        "Further discussion.",
    ]
    assert table.repositioned


def test_cut_off_mention_defers_to_next_complete_paragraph(special_item) -> None:
    table = special_item(ItemType.TABLE_ROWS, "T", page=1, label=Label("Table", "2"))
    mention = make_item(ItemType.TEXT, "In Table 2 we see that", 2, is_end_cut_off=True)
    rest = make_item(ItemType.TEXT, "the effect doubles.", 3)
    after = make_item(ItemType.TEXT, "Next.", 3)

    result = reposition_special_items([table, mention, rest, after])

    assert _contents(result) == ["In Table 2 we see that", "the effect doubles.", "T", "Next."]


def test_heading_anchor_places_item_before_heading(special_item) -> None:
    figure = special_item(ItemType.FIGURE_IMAGE, "F", page=1, label=Label("Figure", "3"))
    mention = make_item(ItemType.TEXT, "Figure 3 illustrates the", 2, is_end_cut_off=True)
    heading = make_item(ItemType.HEADING, "Methods", 2)

    result = reposition_special_items([figure, mention, heading])

    assert _contents(result) == ["Figure 3 illustrates the", "F", "Methods"]


def test_unmentioned_item_moves_after_next_complete_paragraph(special_item) -> None:
    first = make_item(ItemType.TEXT, "Intro.", 1)
    figure = special_item(ItemType.FIGURE_IMAGE, "F", page=1, label=Label("Figure", "9"))
    cut = make_item(ItemType.TEXT, "this continues", 1, is_end_cut_off=True)
    done = make_item(ItemType.TEXT, "onto the next page.", 2)

    result = reposition_special_items([first, figure, cut, done])

    assert _contents(result) == ["Intro.", "this continues", "onto the next page.", "F"]


def test_same_type_items_stay_in_order(special_item) -> None:
    mention = make_item(ItemType.TEXT, "Table 1 and Table 2 compare models.", 1)
    tail = make_item(ItemType.TEXT, "Conclusion.", 2)
    t1 = special_item(ItemType.TABLE_ROWS, "T1", page=4, label=Label("Table", "1"))
    t2 = special_item(ItemType.TABLE_ROWS, "T2", page=4, label=Label("Table", "2"))

    result = reposition_special_items([mention, tail, t1, t2])

    assert _contents(result) == [mention.content, "T1", "T2", "Conclusion."]


def test_unlabeled_items_stay_and_rerun_is_noop(special_item) -> None:
    code = special_item(ItemType.CODE_OR_ALGORITHM, "code", page=1, label=None)
    mention = make_item(ItemType.TEXT, "Table 1 is key.", 1)
    table = special_item(ItemType.TABLE_ROWS, "T", page=3, label=Label("Table", "1"))
    items = [code, mention, make_item(ItemType.TEXT, "More.", 2), table]

    once = reposition_special_items(items)
    twice = reposition_special_items(once)

    assert once[0] is code
    assert _contents(twice) == _contents(once)


def test_abbreviation_ending_mention_stays_the_anchor(special_item) -> None:
    mention = make_item(ItemType.TEXT, "Table 1 replicates the result of Smith et al.", 1)
    unrelated = make_item(ItemType.TEXT, "Unrelated later paragraph.", 1)
    heading = make_item(ItemType.HEADING, "Discussion", 2)
    table = special_item(ItemType.TABLE_ROWS, "T", page=4, label=Label("Table", "1"))
    items = [mention, unrelated, heading, table]

    tag_cut_offs(items)
    replace_known_abbreviations(items)
    result = reposition_special_items(items)

    assert result.index(table) == 1
    assert _contents(result) == [
        "Table 1 replicates the result of Smith and others.",
        "T",
        "Unrelated later paragraph.",
        "Discussion",
    ]
