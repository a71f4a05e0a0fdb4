"""Tests for staging one submission into the three queues."""

from __future__ import annotations

from typing import Any

import pytest

from contracts.errors import StagingInputError, StoreError
from contracts.schema import PEER_QUEUE, RESPONSES_QUEUE, SUBJECT_QUEUE
from factories import FailingStore, FixedClock, make_store
from pipeline.staging_writer import CorrelationClock, stage


def test_stage_prefixes_every_row_with_the_same_key() -> None:
    """All rows of one submission share the correlation key returned by stage."""
    store = make_store()

    key = stage(
        store,
        [["80", "60"], ["70", "50"]],
        ["F", "22"],
        [["M", "21"], ["F", "30"]],
        clock=FixedClock(1000),
    )

    assert key == 1000
    assert store.read_rows(RESPONSES_QUEUE) == [[1000, "80", "60"], [1000, "70", "50"]]
    assert store.read_rows(SUBJECT_QUEUE) == [[1000, "F", "22"]]
    assert store.read_rows(PEER_QUEUE) == [[1000, "M", "21"], [1000, "F", "30"]]


def test_stage_with_no_peers_writes_only_the_subject_row() -> None:
    """Empty response/peer lists must not issue zero-length appends."""
    store = make_store()
    recording = FailingStore(store)

    stage(recording, [], ["F", "22"], [], clock=FixedClock(5))

    assert recording.calls == [("append_rows", (SUBJECT_QUEUE, [[5, "F", "22"]]))]
    assert store.data_row_count(RESPONSES_QUEUE) == 0
    assert store.data_row_count(PEER_QUEUE) == 0


def test_stage_accepts_tuples_and_mixed_scalars() -> None:
    """Rows may be any non-text sequence of JSON scalars."""
    store = make_store()

    stage(store, [(1, 2.5, True, None)], ("F",), [("M",)], clock=FixedClock(7))

    assert store.read_rows(RESPONSES_QUEUE) == [[7, 1, 2.5, True, None]]


@pytest.mark.parametrize(
    "responses,subject,peers",
    [
        ("not rows", ["F"], []),
        ([["ok"]], "F", []),
        ([["ok"]], ["F"], [{"nested": 1}]),
        ([[{"a": 1}]], ["F"], []),
        ([["ok"]], ["F", float("nan")], []),
    ],
)
def test_stage_rejects_malformed_payloads_before_writing(responses: Any, subject: Any, peers: Any) -> None:
    """Malformed input raises StagingInputError and leaves every queue untouched."""
    store = make_store()

    with pytest.raises(StagingInputError):
        stage(store, responses, subject, peers, clock=FixedClock(1))

    for table in (RESPONSES_QUEUE, SUBJECT_QUEUE, PEER_QUEUE):
        assert store.data_row_count(table) == 0


def test_stage_input_error_is_a_value_error() -> None:
    """Callers that only know ValueError still catch staging input errors."""
    with pytest.raises(ValueError):
        stage(make_store(), None, ["F"], [], clock=FixedClock(1))  # type: ignore[arg-type]


def test_stage_partial_failure_keeps_earlier_appends() -> None:
    """A failed peer append propagates; responses and subject stay staged."""
    store = make_store()
    failing = FailingStore(store, fail_append=[PEER_QUEUE])

    with pytest.raises(RuntimeError):
        stage(failing, [["80"]], ["F"], [["M"]], clock=FixedClock(9))

    assert store.data_row_count(RESPONSES_QUEUE) == 1
    assert store.data_row_count(SUBJECT_QUEUE) == 1
    assert store.data_row_count(PEER_QUEUE) == 0


def test_stage_missing_table_raises_store_error() -> None:
    """Staging into a store without queues surfaces TableNotFoundError."""
    from pipeline.memory_store import InMemoryTableStore

    with pytest.raises(StoreError):
        stage(InMemoryTableStore(), [], ["F"], [], clock=FixedClock(1))


def test_correlation_clock_is_strictly_increasing_within_a_process() -> None:
    """Same or earlier wall-clock readings are bumped past the last key."""
    ticks = iter([1000, 1000, 999, 1005])
    clock = CorrelationClock(now_ms=lambda: next(ticks))

    assert [clock.next_key() for _ in range(4)] == [1000, 1001, 1002, 1005]


def test_stage_logs_submission_event(caplog: Any) -> None:
    """Staging logs the key and row counts as structured fields."""
    caplog.set_level("INFO")

    stage(make_store(), [["1"], ["2"]], ["F"], [["M"], ["F"]], clock=FixedClock(42))

    records = [r for r in caplog.records if r.getMessage() == "submission_staged"]
    assert len(records) == 1
    assert records[0].submission_key == 42
    assert records[0].responses == 2
    assert records[0].peers == 2
