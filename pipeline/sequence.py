"""Sequence allocator for output-table identifiers."""

from __future__ import annotations

from contracts.interfaces import TableStore
from contracts.schema import as_number


def last_assigned_id(store: TableStore, table: str) -> int:
    """Return the id in the first column of *table*'s last data row.

    Returns 0 when the table holds only its header or when that cell is not a
    number. Consolidation calls this once per table and counts up in memory.
    """
    last = store.last_row(table)
    if not last:
        return 0
    number = as_number(last[0])
    if number is None:
        return 0
    return int(number)
