"""In-process ``TableStore`` backend.

Used by tests and by single-process deployments that do not need durability.
Each public method holds one lock, so concurrent staging calls from Flask
worker threads never interleave inside a single append.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence

from contracts.errors import StoreError, TableNotFoundError
from contracts.schema import Cell, Row
from pipeline.store_base import check_batch, sorted_rows


class InMemoryTableStore:
    """Dictionary of ``table -> (header, rows)``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._headers: dict[str, list[str]] = {}
        self._rows: dict[str, list[Row]] = {}

    def _rows_for(self, table: str) -> list[Row]:
        rows = self._rows.get(table)
        if rows is None:
            raise TableNotFoundError(table)
        return rows

    def create_table(self, table: str, header: Sequence[str]) -> None:
        if not header:
            raise StoreError(f"table {table!r} needs a non-empty header")
        with self._lock:
            if table in self._headers:
                return
            self._headers[table] = [str(h) for h in header]
            self._rows[table] = []

    def has_table(self, table: str) -> bool:
        with self._lock:
            return table in self._headers

    def header(self, table: str) -> list[str]:
        with self._lock:
            self._rows_for(table)
            return list(self._headers[table])

    def data_row_count(self, table: str) -> int:
        with self._lock:
            return len(self._rows_for(table))

    def read_rows(self, table: str) -> list[Row]:
        with self._lock:
            return [list(row) for row in self._rows_for(table)]

    def append_rows(self, table: str, rows: Sequence[Sequence[Cell]]) -> None:
        batch = check_batch(table, rows)
        with self._lock:
            self._rows_for(table).extend(batch)

    def last_row(self, table: str) -> Row | None:
        with self._lock:
            rows = self._rows_for(table)
            return list(rows[-1]) if rows else None

    def sort_data_rows(self, table: str, column: int) -> None:
        with self._lock:
            rows = self._rows_for(table)
            rows[:] = sorted_rows(rows, column)

    def clear_data_rows(self, table: str) -> None:
        with self._lock:
            self._rows_for(table).clear()
