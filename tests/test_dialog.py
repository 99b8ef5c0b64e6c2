"""Tests for dialog normalization, consolidation, attribution and formatting."""

from __future__ import annotations

import pytest

from call_qc.dialog.attribution import attribute_issues, split_issues
from call_qc.dialog.consolidate import consolidate
from call_qc.dialog.formatting import format_annotated_dialog, format_dialog_for_copy, speaker_stats
from call_qc.dialog.normalize import normalize_for_display, normalize_for_matching
from call_qc.dialog.turns import ConsolidatedTurn, Turn
from call_qc.evaluation.models import Issue


def _turns(*pairs: tuple[str, str]) -> list[Turn]:
    return [Turn(speaker, text, float(i), float(i) + 0.5) for i, (speaker, text) in enumerate(pairs)]


# --- normalization -------------------------------------------------------


def test_display_normalization_collapses_whitespace_only() -> None:
    raw = "  Hello<br/>world  and\r\nmore text \u0085end.  "
    assert normalize_for_display(raw) == "Hello world and more text end."
    assert normalize_for_display("Keep CASE, and «quotes»!") == "Keep CASE, and «quotes»!"
    assert normalize_for_display(None) == ""


def test_matching_normalization_folds() -> None:
    assert normalize_for_matching("“Hello — World.”") == "hello - world"
    assert normalize_for_matching("ＨＥＬＬＯ") == "hello"
    assert normalize_for_matching("Straße") == "strasse"
    assert normalize_for_matching("it’s <BR>fine...") == "it's fine"


def test_normalizations_are_idempotent() -> None:
    raw = " «Foo» – bar.<br>"
    display = normalize_for_display(raw)
    matching = normalize_for_matching(raw)
    assert normalize_for_display(display) == display
    assert normalize_for_matching(matching) == matching


# --- consolidation -------------------------------------------------------


def test_consolidate_example_scenario() -> None:
    raw = [Turn("S0", "Hello", 0.0, 0.5, 0.9), Turn("S0", "there.", 0.6, 1.0, 0.7), Turn("S1", "Hi!", 1.2, 1.5)]
    merged = consolidate(raw)

    assert [(t.speaker_id, t.text) for t in merged] == [("S0", "Hello there."), ("S1", "Hi!")]
    first = merged[0]
    assert (first.start_sec, first.end_sec) == (0.0, 1.0)
    assert first.confidence == pytest.approx(0.7)
    assert first.source_indices == (0, 1)
    assert merged[1].source_indices == (2,)


def test_consolidate_is_idempotent() -> None:
    raw = _turns(("A", "one"), ("A", " two\n"), ("B", "three"), ("A", "four"), ("A", "five"))
    once = consolidate(raw)
    assert consolidate(once) == once


def test_consolidate_partitions_input() -> None:
    raw = _turns(("A", "a1"), ("B", "b1"), ("B", "b2<br>b3"), ("C", "c1"), ("C", "c2"), ("A", "a2"))
    merged = consolidate(raw)

    indices = [i for t in merged for i in t.source_indices]
    assert indices == list(range(len(raw)))
    raw_text = " ".join(normalize_for_display(t.text) for t in raw)
    assert " ".join(t.text for t in merged) == raw_text
    assert all(a.speaker_id != b.speaker_id for a, b in zip(merged, merged[1:]))


def test_consolidate_edge_cases() -> None:
    assert consolidate([]) == ()
    merged = consolidate(_turns(("A", "x"), ("A", "   "), ("A", "y")))
    assert merged == (ConsolidatedTurn("A", "x y", 0.0, 2.5),)


# --- attribution ---------------------------------------------------------


def test_attribution_example_scenario() -> None:
    merged = consolidate(_turns(("S0", "Hello"), ("S0", "there."), ("S1", "Hi!")))
    hello = Issue("Mistake", "too casual", "hello there")
    goodbye = Issue("Mistake", "never said", "goodbye")

    mapping, dropped = split_issues(merged, [hello, goodbye])
    assert mapping == {0: [hello]}
    assert dropped == [goodbye]


def test_attribution_prefers_shortest_turn() -> None:
    turns = _turns(
        ("A", "Thanks for calling, have a nice day and see you soon"),
        ("B", "Ok"),
        ("A", "Thanks for calling"),
    )
    issue = Issue("Correct", "polite", "“thanks for calling.”")
    assert attribute_issues(turns, [issue]) == {2: [issue]}


def test_attribution_tie_breaks() -> None:
    # Same length: earliest match position wins.
    turns = _turns(("A", "xx refund now"), ("B", "refund now xx"))
    issue = Issue("Mistake", "", "refund")
    assert attribute_issues(turns, [issue]) == {1: [issue]}

    # Same length and position: lowest index wins.
    turns = _turns(("A", "refund please"), ("B", "refund please"))
    assert attribute_issues(turns, [issue]) == {0: [issue]}


def test_attribution_drops_empty_and_unmatched() -> None:
    turns = _turns(("A", "Good morning"), ("B", "Morning"))
    empty = Issue("Mistake", "no quote", "")
    dots = Issue("Mistake", "only punctuation", '"..."')
    fuzzy = Issue("Mistake", "close but not equal", "good evening")
    mapping, dropped = split_issues(turns, [empty, dots, fuzzy])
    assert mapping == {}
    assert dropped == [empty, dots, fuzzy]


def test_attribution_is_deterministic_and_one_to_many() -> None:
    turns = consolidate(_turns(("A", "I can't help you."), ("B", "Why not?"), ("A", "Rules, sorry.")))
    issues = [
        Issue("Banned", "refusal", "can't help"),
        Issue("Mistake", "no reason", "I can’t help you"),
        Issue("Acceptable", "apology", "sorry"),
        Issue("Mistake", "missing", "call back later"),
    ]
    first = split_issues(turns, issues)
    second = split_issues(turns, list(issues))
    assert first == second
    mapping, dropped = first
    assert [i.comment_text for i in mapping[0]] == ["refusal", "no reason"]
    assert [i.comment_text for i in mapping[2]] == ["apology"]
    assert len(dropped) == 1
    attributed = [i for items in mapping.values() for i in items]
    assert len(attributed) == len(set(id(i) for i in attributed))


# --- formatting ----------------------------------------------------------


def test_format_dialog_for_copy() -> None:
    turns = _turns(("S0", "a"), ("S0", "b"), ("S1", "c"))
    assert format_dialog_for_copy(turns) == "S0:\n- a\n- b\n\nS1:\n- c"
    assert format_dialog_for_copy([]) == ""


def test_speaker_stats() -> None:
    stats = speaker_stats([Turn("A", "x", 0.0, 2.0), Turn("B", "y", 2.0, 3.5), Turn("A", "z", 4.0, 5.0)])
    assert stats["A"].count == 2
    assert stats["A"].total_duration == pytest.approx(3.0)
    assert stats["B"].total_duration == pytest.approx(1.5)


def test_format_annotated_dialog_lists_issues_under_turn() -> None:
    turns = [Turn("Agent", "Hello", 0.0, 65.0), Turn("Client", "Hi", 65.0, 70.0)]
    text = format_annotated_dialog(turns, {1: [Issue("Mistake", "too short")]}, title="call")
    assert text.startswith("# call\n")
    assert "**Agent** [0:00-1:05]" in text
    client_part = text.split("**Client**")[1]
    assert "> **Mistake**: too short" in client_part
