"""Staging reader: load a staging queue ordered by correlation key."""

from __future__ import annotations

from contracts.interfaces import TableStore
from contracts.schema import KEY_COLUMN, Row


def read_staged_rows(store: TableStore, table: str) -> list[Row]:
    """Return the data rows of *table* ascending by correlation key.

    A header-only queue returns ``[]`` without issuing a sort or a read: an
    empty range is never requested from the store. Rows sharing a key keep
    their staging order, which the reconciler relies on for positional pairing.
    """
    if store.data_row_count(table) <= 0:
        return []
    store.sort_data_rows(table, KEY_COLUMN)
    return store.read_rows(table)
