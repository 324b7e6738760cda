from __future__ import annotations

from papernarrator.items import ItemType, Label, make_item
from papernarrator.script import add_pause_cues, replace_known_abbreviations, tag_cut_offs
from papernarrator.script.abbreviations import ABBREVIATIONS, expand_abbreviations
from papernarrator.script.text_preprocessor import (
    URL_PLACEHOLDER,
    detect_cut_off,
    replace_urls,
    split_sentences,
)


def test_replace_urls() -> None:
    text = "Code at https://github.com/x/y and http://a.b/c."
    assert replace_urls(text) == f"Code at {URL_PLACEHOLDER} and {URL_PLACEHOLDER}"


def test_detect_cut_off() -> None:
    assert detect_cut_off("A complete sentence.") == (False, False)
    assert detect_cut_off("continued from the last page.") == (True, False)
    assert detect_cut_off("This paragraph runs onto the") == (False, True)
    assert detect_cut_off("Trailing off...") == (False, True)
    assert detect_cut_off("See the results (Table 2)") == (False, False)


def test_tag_cut_offs_only_touches_prose(text_item) -> None:
    body = text_item("which ends mid")
    heading = make_item(ItemType.HEADING, "lower case heading", 1)

    tag_cut_offs([body, heading])

    assert body.is_start_cut_off and body.is_end_cut_off
    assert not hasattr(heading, "is_end_cut_off")


def test_split_sentences_respects_abbreviations() -> None:
    text = "Dr. Smith ran the test. Results are in Fig. 3 below. Done!"
    assert split_sentences(text) == [
        "Dr. Smith ran the test.",
        "Results are in Fig. 3 below.",
        "Done!",
    ]
    assert split_sentences("") == []


def test_initialisms_get_dotted() -> None:
    text = "The 95% CIs overlap and the ROC curve and AUC agree."
    assert expand_abbreviations(text) == (
        "The 95% C.I.s overlap and the R.O.C. curve and A.U.C. agree."
    )


def test_abbreviations_are_whole_word_and_case_sensitive() -> None:
    text = "Rock music, roc curves and CIRCLE shapes."
    assert expand_abbreviations(text) == text


def test_spoken_expansions() -> None:
    text = "Several models, e.g. trees, were compared (cf. Smith et al. 2020)."
    assert expand_abbreviations(text) == (
        "Several models, for example trees, were compared (compare Smith and others 2020)."
    )


def test_replace_known_abbreviations_counts_changes(text_item) -> None:
    items = [text_item("The CI is narrow."), text_item("Nothing to do.")]

    assert replace_known_abbreviations(items, ABBREVIATIONS) == 1
    assert items[0].content == "The C.I. is narrow."


def test_add_pause_cues(text_item, special_item) -> None:
    complete = text_item("Done.")
    cut = text_item("runs on", is_end_cut_off=True)
    table = special_item(ItemType.TABLE_ROWS, "Table 1 summary: big.", label=Label("Table", "1"))
    heading = make_item(ItemType.HEADING, "[break0.7]Methods[break0.7]", 1)

    add_pause_cues([complete, cut, table, heading])

    assert complete.content == "Done.[break0.4]"
    assert cut.content == "runs on"
    assert table.content.endswith("[break0.4]")
    assert heading.content == "[break0.7]Methods[break0.7]"


def test_sentence_final_abbreviations_keep_one_period() -> None:
    assert expand_abbreviations("Table 1 replicates the result of Smith et al.") == (
        "Table 1 replicates the result of Smith and others."
    )
    assert expand_abbreviations("Table 1 reports the 95% CI.") == "Table 1 reports the 95% C.I."
    assert expand_abbreviations("Both CIs. Then AUC.") == "Both C.I.s. Then A.U.C."
    assert expand_abbreviations("As Smith et al. Showed later.") == "As Smith and others. Showed later."
    assert expand_abbreviations("Trees, e.g. Oaks, grow.") == "Trees, for example Oaks, grow."


def test_expanded_paragraphs_are_not_marked_cut_off(text_item) -> None:
    items = [
        text_item("Table 1 replicates the result of Smith et al."),
        text_item("Table 1 reports the 95% CI."),
    ]

    tag_cut_offs(items)
    replace_known_abbreviations(items)
    tag_cut_offs(items)

    assert [it.is_end_cut_off for it in items] == [False, False]
