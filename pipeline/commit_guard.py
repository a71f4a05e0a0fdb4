"""Commit/clear guard: persist output row sets, then clear staging.

Staging queues are cleared only after every output write has succeeded. A
failed output write raises ``CommitError`` and leaves all three queues as they
were, so the next consolidation run reprocesses the same staged rows. Output
tables written before the failure keep their rows; convergence relies on
reprocessing, not on de-duplication.

A failed clear can leave some queues populated. The subject queue is cleared
first, so a rerun never turns already-committed submissions into new Subject
rows; it only drops their leftover response and peer rows as orphans.
"""

from __future__ import annotations

from contracts.errors import ClearError, CommitError
from contracts.interfaces import TableStore
from contracts.schema import (
    PEER_QUEUE,
    RECORDS_TABLE,
    RESPONSES_QUEUE,
    RESPONSES_TABLE,
    SUBJECT_PEERS_TABLE,
    SUBJECT_QUEUE,
    SUBJECTS_TABLE,
    Row,
)
from pipeline.reconciler import OutputRowSets

CLEAR_ORDER: tuple[str, ...] = (SUBJECT_QUEUE, RESPONSES_QUEUE, PEER_QUEUE)


def _writes(row_sets: OutputRowSets) -> list[tuple[str, list[Row]]]:
    return [
        (RESPONSES_TABLE, row_sets.responses),
        (SUBJECTS_TABLE, row_sets.subjects),
        (SUBJECT_PEERS_TABLE, row_sets.subject_peers),
        (RECORDS_TABLE, row_sets.records),
    ]


def commit_and_clear(store: TableStore, row_sets: OutputRowSets) -> list[str]:
    """Append the four row sets, then clear the staging queues.

    Empty row sets are skipped (no zero-length write is issued).

    Returns:
        Names of the output tables that received rows.

    Raises:
        CommitError: an output write failed; staging untouched.
        ClearError: all outputs were written but a staging clear failed.
    """
    written: list[str] = []
    for table, rows in _writes(row_sets):
        if not rows:
            continue
        try:
            store.append_rows(table, rows)
        except Exception as exc:
            raise CommitError(table, written, exc) from exc
        written.append(table)

    cleared: list[str] = []
    for table in CLEAR_ORDER:
        try:
            store.clear_data_rows(table)
        except Exception as exc:
            raise ClearError(table, cleared, exc) from exc
        cleared.append(table)
    return written
