"""Tests for building normalized output row sets from staged rows."""

from __future__ import annotations

from typing import Any

from pipeline.reconciler import build_output_row_sets


def test_single_submission_example() -> None:
    """One subject, one response, one peer with no prior ids."""
    plan = build_output_row_sets(
        [[1000, "F", "22"]],
        [[1000, "80", "60"]],
        [[1000, "M", "21"]],
        start_subject_id=0,
        start_response_id=0,
    )

    sets = plan.row_sets
    assert sets.subjects == [[1, "F", "22"]]
    assert sets.responses == [[1, "80", "60"]]
    assert sets.subject_peers == [[1, 1, "M", "21"]]
    assert sets.records == [[1, 1, 1]]
    assert plan.mismatches == []
    assert plan.orphan_keys == []


def test_ids_continue_from_existing_output() -> None:
    """Subject and response ids count on from the last stored ids."""
    plan = build_output_row_sets(
        [[1, "a"], [2, "b"]],
        [[1, "r1"], [1, "r2"], [2, "r3"]],
        [[1, "p1"], [1, "p2"], [2, "p3"]],
        start_subject_id=7,
        start_response_id=20,
    )

    sets = plan.row_sets
    assert [row[0] for row in sets.subjects] == [8, 9]
    assert [row[0] for row in sets.responses] == [21, 22, 23]
    assert sets.subject_peers == [[8, 1, "p1"], [8, 2, "p2"], [9, 1, "p3"]]
    assert sets.records == [[21, 8, 1], [22, 8, 2], [23, 9, 1]]
    assert plan.last_subject_id == 9
    assert plan.last_response_id == 23


def test_peers_and_responses_pair_by_position() -> None:
    """The i-th peer row of a submission pairs with its i-th response row."""
    plan = build_output_row_sets(
        [[5, "s"]],
        [[5, "first"], [5, "second"]],
        [[5, "A"], [5, "B"]],
        start_subject_id=0,
        start_response_id=0,
    )

    records = plan.row_sets.records
    responses = {row[0]: row[1] for row in plan.row_sets.responses}
    peers = {row[1]: row[2] for row in plan.row_sets.subject_peers}
    assert [(responses[r], peers[p]) for r, _, p in records] == [("first", "A"), ("second", "B")]


def test_count_mismatch_pairs_the_shorter_list_and_warns(caplog: Any) -> None:
    """Three responses and two peers yield two records and a warning."""
    caplog.set_level("WARNING")

    plan = build_output_row_sets(
        [[1000, "F"]],
        [[1000, "r1"], [1000, "r2"], [1000, "r3"]],
        [[1000, "p1"], [1000, "p2"]],
        start_subject_id=0,
        start_response_id=0,
    )

    assert len(plan.row_sets.records) == 2
    assert len(plan.row_sets.responses) == 2
    assert len(plan.row_sets.subject_peers) == 2
    assert len(plan.mismatches) == 1
    mismatch = plan.mismatches[0]
    assert (mismatch.key, mismatch.subject_id, mismatch.responses, mismatch.peers) == (1000, 1, 3, 2)
    assert mismatch.paired == 2

    warnings = [r for r in caplog.records if r.getMessage() == "reconcile_count_mismatch"]
    assert len(warnings) == 1
    assert warnings[0].responses == 3
    assert warnings[0].peers == 2


def test_subject_without_peers_still_gets_a_subject_row() -> None:
    """A submission with no ratings produces only its subject row."""
    plan = build_output_row_sets(
        [[1, "F"]],
        [],
        [],
        start_subject_id=0,
        start_response_id=0,
    )

    assert plan.row_sets.subjects == [[1, "F"]]
    assert plan.row_sets.responses == []
    assert plan.row_sets.records == []
    assert plan.mismatches == []


def test_numeric_and_text_keys_correlate() -> None:
    """``1000`` and ``"1000"`` are the same submission."""
    plan = build_output_row_sets(
        [[1000, "F"]],
        [["1000", "80"]],
        [[1000.0, "M"]],
        start_subject_id=0,
        start_response_id=0,
    )

    assert plan.row_sets.records == [[1, 1, 1]]


def test_rows_without_a_subject_are_reported_as_orphans(caplog: Any) -> None:
    """Response/peer groups with no subject row produce no output."""
    caplog.set_level("WARNING")

    plan = build_output_row_sets(
        [[1, "F"]],
        [[1, "r"], [2, "orphan"]],
        [[1, "p"], [3, "orphan"]],
        start_subject_id=0,
        start_response_id=0,
    )

    assert plan.row_sets.records == [[1, 1, 1]]
    assert plan.orphan_keys == [2, 3]
    assert any(r.getMessage() == "reconcile_orphan_rows" for r in caplog.records)


def test_no_subjects_means_empty_row_sets() -> None:
    """Without subject rows nothing is emitted."""
    plan = build_output_row_sets([], [], [], start_subject_id=4, start_response_id=9)

    assert plan.row_sets.is_empty()
    assert plan.last_subject_id == 4
    assert plan.last_response_id == 9
