"""
Protocol definitions for dependency injection.

This module defines explicit interfaces (Protocols) for the collaborators of
the staging/consolidation pipeline, enabling:
- Swappable storage backends (in-memory, DuckDB file, Postgres)
- Easy fakes in tests
- Clear contracts between components

Usage:
    from contracts.interfaces import TableStore

    def read_everything(store: TableStore, table: str) -> list[list]:
        return store.read_rows(table)
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable

from contracts.schema import Cell, Row

# -----------------------------------------------------------------------------
# Tabular store
# -----------------------------------------------------------------------------

@runtime_checkable
class TableStore(Protocol):
    """Row-oriented store addressed by table name.

    Every table has a header row plus zero-or-more data rows kept in insertion
    order (until ``sort_data_rows`` reorders them). Methods raise
    ``TableNotFoundError`` for unknown tables.
    """

    def create_table(self, table: str, header: Sequence[str]) -> None:
        """Create *table* with *header* if it does not exist yet."""
        ...

    def has_table(self, table: str) -> bool:
        """Return True when *table* exists."""
        ...

    def header(self, table: str) -> list[str]:
        """Return the header row of *table*."""
        ...

    def data_row_count(self, table: str) -> int:
        """Return the number of data rows (header excluded)."""
        ...

    def read_rows(self, table: str) -> list[Row]:
        """Return all data rows in store order (header excluded)."""
        ...

    def append_rows(self, table: str, rows: Sequence[Sequence[Cell]]) -> None:
        """Append a non-empty batch of rows in one write."""
        ...

    def last_row(self, table: str) -> Row | None:
        """Return the last data row, or None when only the header exists."""
        ...

    def sort_data_rows(self, table: str, column: int) -> None:
        """Persistently reorder data rows ascending by *column* (stable)."""
        ...

    def clear_data_rows(self, table: str) -> None:
        """Delete every data row, keeping the header."""
        ...


# -----------------------------------------------------------------------------
# Availability gate and consolidation lease
# -----------------------------------------------------------------------------

@runtime_checkable
class AvailabilityStatus(Protocol):
    """Advisory flag telling whether the survey form is accepting submissions."""

    def is_active(self) -> bool:
        """Return True while the survey is open."""
        ...


class ReconcileLease(Protocol):
    """Mutual exclusion for consolidation runs."""

    def hold(self) -> AbstractContextManager[bool]:
        """Context manager yielding True when the lease was acquired."""
        ...

