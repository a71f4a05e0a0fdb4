"""Canonical table layout for the survey store.

Single source of truth for:
- staging and output table names
- the header row every table is created with
- cell typing rules (cells are JSON scalars)
- correlation-key ordering and equality

Data rows may be wider than their header: response and demographic payloads
have a survey-specific width that the pipeline carries through unchanged.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Union

Cell = Union[str, int, float, bool, None]
Row = list[Cell]

KEY_COLUMN = 0

RESPONSES_QUEUE = "responses_queue"
SUBJECT_QUEUE = "subject_queue"
PEER_QUEUE = "peer_queue"

RESPONSES_TABLE = "responses"
SUBJECTS_TABLE = "subjects"
SUBJECT_PEERS_TABLE = "subject_peers"
RECORDS_TABLE = "records"

STATUS_TABLE = "survey_status"

STAGING_TABLES: tuple[str, ...] = (RESPONSES_QUEUE, SUBJECT_QUEUE, PEER_QUEUE)

# Write order matters: commit failures are reported relative to this order.
OUTPUT_TABLES: tuple[str, ...] = (
    RESPONSES_TABLE,
    SUBJECTS_TABLE,
    SUBJECT_PEERS_TABLE,
    RECORDS_TABLE,
)


@dataclass(frozen=True)
class TableLayout:
    """Name and header of one store table."""

    name: str
    header: tuple[str, ...]


TABLE_LAYOUTS: tuple[TableLayout, ...] = (
    TableLayout(RESPONSES_QUEUE, ("submission_key", "ratings")),
    TableLayout(SUBJECT_QUEUE, ("submission_key", "subject_fields")),
    TableLayout(PEER_QUEUE, ("submission_key", "peer_fields")),
    TableLayout(RESPONSES_TABLE, ("response_id", "ratings")),
    TableLayout(SUBJECTS_TABLE, ("subject_id", "subject_fields")),
    TableLayout(SUBJECT_PEERS_TABLE, ("subject_id", "peer_id", "peer_fields")),
    TableLayout(RECORDS_TABLE, ("response_id", "subject_id", "peer_id")),
    TableLayout(STATUS_TABLE, ("state", "changed_at", "actor")),
)


def is_cell(value: Any) -> bool:
    """Return True when *value* is a storable JSON scalar."""
    if value is None or isinstance(value, (str, bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    return False


def is_row_sequence(value: Any) -> bool:
    """Return True for list/tuple-like sequences (text is not a row)."""
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def as_number(value: Any) -> Decimal | None:
    """Parse a cell as a number, or return None when it is not numeric.

    Booleans are not numbers here even though ``bool`` subclasses ``int``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


def key_sort_key(value: Cell) -> tuple[int, Any]:
    """Ordering for correlation keys: numbers first (numerically), then text."""
    number = as_number(value)
    if number is not None:
        return (0, number)
    return (1, "" if value is None else str(value))


def key_token(value: Cell) -> str:
    """Equality token for correlation keys.

    ``1000``, ``1000.0`` and ``"1000"`` are the same key; anything else is
    compared by its text.
    """
    number = as_number(value)
    if number is not None:
        return f"n:{number.normalize():f}"
    return f"s:{'' if value is None else value}"


__all__ = [
    "Cell",
    "KEY_COLUMN",
    "OUTPUT_TABLES",
    "PEER_QUEUE",
    "RECORDS_TABLE",
    "RESPONSES_QUEUE",
    "RESPONSES_TABLE",
    "Row",
    "STAGING_TABLES",
    "STATUS_TABLE",
    "SUBJECTS_TABLE",
    "SUBJECT_PEERS_TABLE",
    "SUBJECT_QUEUE",
    "TABLE_LAYOUTS",
    "TableLayout",
    "as_number",
    "is_cell",
    "is_row_sequence",
    "key_sort_key",
    "key_token",
]
