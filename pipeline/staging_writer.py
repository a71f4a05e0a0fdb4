"""Staging writer: append one survey submission to the three staging queues.

A submission is three payloads produced by the form:

- ``responses``: one rating row per rated peer
- ``subject_data``: one row describing the reviewer
- ``peer_data``: one demographic row per rated peer

Every staged row is prefixed with the same correlation key; that key is the
only link between rows of the three queues. The three appends are independent
writes with no cross-table transaction and no lock, so a failure part-way
leaves earlier rows staged; the reconciler tolerates such incomplete groups.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from typing import Any

from contracts.errors import StagingInputError
from contracts.interfaces import TableStore
from contracts.schema import PEER_QUEUE, RESPONSES_QUEUE, SUBJECT_QUEUE, Row, is_cell, is_row_sequence
from infra.logging_config import StructuredLogger

logger = StructuredLogger(__name__)


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class CorrelationClock:
    """Issues epoch-millisecond correlation keys.

    Keys from one clock are strictly increasing: when the wall clock has not
    advanced (or went backwards) since the previous key, the previous key + 1
    is issued instead. Two processes can still produce the same key.
    """

    def __init__(self, now_ms: Callable[[], int] = _epoch_millis) -> None:
        self._now_ms = now_ms
        self._last = 0
        self._lock = threading.Lock()

    def next_key(self) -> int:
        with self._lock:
            key = max(int(self._now_ms()), self._last + 1)
            self._last = key
            return key


_DEFAULT_CLOCK = CorrelationClock()


def _check_row(name: str, row: Any) -> list[Any]:
    if not is_row_sequence(row):
        raise StagingInputError(f"{name} must be a sequence, got {type(row).__name__}")
    cells = list(row)
    for cell in cells:
        if not is_cell(cell):
            raise StagingInputError(f"{name} holds an unsupported value {cell!r} ({type(cell).__name__})")
    return cells


def _check_rows(name: str, rows: Any) -> list[list[Any]]:
    if not is_row_sequence(rows):
        raise StagingInputError(f"{name} must be a sequence of sequences, got {type(rows).__name__}")
    return [_check_row(f"{name}[{i}]", row) for i, row in enumerate(rows)]


def stage(
    store: TableStore,
    responses: Sequence[Sequence[Any]],
    subject_data: Sequence[Any],
    peer_data: Sequence[Sequence[Any]],
    *,
    clock: CorrelationClock | None = None,
) -> int:
    """Stage one submission and return its correlation key.

    All payloads are validated before the first write.

    Raises:
        StagingInputError: a payload is not a (nested) sequence of JSON scalars.
        StoreError: a staging append failed (earlier appends are not undone).
    """
    response_rows = _check_rows("responses", responses)
    subject_row = _check_row("subject_data", subject_data)
    peer_rows = _check_rows("peer_data", peer_data)

    key = (clock or _DEFAULT_CLOCK).next_key()

    staged_responses: list[Row] = [[key, *row] for row in response_rows]
    staged_peers: list[Row] = [[key, *row] for row in peer_rows]

    if staged_responses:
        store.append_rows(RESPONSES_QUEUE, staged_responses)
    store.append_rows(SUBJECT_QUEUE, [[key, *subject_row]])
    if staged_peers:
        store.append_rows(PEER_QUEUE, staged_peers)

    logger.info(
        "submission_staged",
        submission_key=key,
        responses=len(staged_responses),
        peers=len(staged_peers),
    )
    return key
