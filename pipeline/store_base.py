"""Shared helpers for ``TableStore`` backends.

Backends differ in where rows live (process memory, a DuckDB file, Postgres)
but agree on batch validation, sort order and schema bootstrap; those rules
live here so every backend behaves identically.
"""

from __future__ import annotations

from collections.abc import Sequence

from contracts.errors import StoreError
from contracts.interfaces import TableStore
from contracts.schema import TABLE_LAYOUTS, Cell, Row, is_cell, is_row_sequence, key_sort_key


def check_batch(table: str, rows: Sequence[Sequence[Cell]]) -> list[Row]:
    """Validate an append batch and return it as a list of list rows.

    Raises:
        StoreError: if the batch is empty or contains a non-row / non-scalar cell.
    """
    if not is_row_sequence(rows):
        raise StoreError(f"append to {table!r}: rows must be a sequence of rows")
    batch = list(rows)
    if not batch:
        raise StoreError(f"append to {table!r}: refusing a zero-length range write")
    out: list[Row] = []
    for index, row in enumerate(batch):
        if not is_row_sequence(row):
            raise StoreError(f"append to {table!r}: row {index} is not a sequence")
        cells = list(row)
        for cell in cells:
            if not is_cell(cell):
                raise StoreError(
                    f"append to {table!r}: row {index} has unsupported cell {cell!r} ({type(cell).__name__})"
                )
        out.append(cells)
    return out


def cell_at(row: Sequence[Cell], column: int) -> Cell:
    """Return ``row[column]`` or None for short rows."""
    return row[column] if 0 <= column < len(row) else None


def sorted_rows(rows: Sequence[Row], column: int) -> list[Row]:
    """Stable ascending sort of *rows* by *column* using correlation-key order."""
    return sorted(rows, key=lambda row: key_sort_key(cell_at(row, column)))


def ensure_survey_tables(store: TableStore) -> list[str]:
    """Create every canonical table that is missing; return the names created."""
    created: list[str] = []
    for layout in TABLE_LAYOUTS:
        if store.has_table(layout.name):
            continue
        store.create_table(layout.name, layout.header)
        created.append(layout.name)
    return created
