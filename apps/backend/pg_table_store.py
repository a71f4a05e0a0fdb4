"""Postgres-backed ``TableStore``.

Same layout as the DuckDB store, on a shared Postgres database so several
Flask workers (or hosts) can stage submissions concurrently:

- ``store_tables``: table name and JSONB header
- ``store_rows``: data rows as JSONB arrays, ordered by ``COALESCE(position, row_id)``

Each method runs in its own short transaction on a pooled connection; an
append batch is a single transaction, so a batch lands entirely or not at all.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from apps.backend.db import (
    execute_conn,
    execute_many_conn,
    fetch_all_conn,
    fetch_one_conn,
    run_in_transaction,
    to_jsonb,
)
from contracts.errors import StoreError, TableNotFoundError
from contracts.schema import Cell, Row
from pipeline.store_base import check_batch, sorted_rows

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS store_tables (
      table_name TEXT PRIMARY KEY,
      header JSONB NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS store_rows (
      row_id BIGSERIAL PRIMARY KEY,
      table_name TEXT NOT NULL REFERENCES store_tables (table_name),
      position BIGINT,
      cells JSONB NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS store_rows_table_order_idx
      ON store_rows (table_name, (COALESCE(position, row_id)), row_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS run_locks (
      lock_name TEXT PRIMARY KEY,
      lock_owner TEXT NOT NULL,
      lock_token TEXT NOT NULL,
      acquired_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      expires_at TIMESTAMPTZ NOT NULL
    )
    """,
)

_ORDER = "COALESCE(position, row_id), row_id"


def _require(conn: Any, table: str) -> list[str]:
    row = fetch_one_conn(conn, "SELECT header FROM store_tables WHERE table_name = %s", (table,))
    if row is None:
        raise TableNotFoundError(table)
    return [str(h) for h in (row[0] or [])]


class PostgresTableStore:
    """TableStore over the pooled connections of ``apps.backend.db``."""

    def ensure_schema(self) -> None:
        """Create the store tables (idempotent)."""

        def _work(conn: Any) -> None:
            for stmt in SCHEMA_STATEMENTS:
                execute_conn(conn, stmt)

        run_in_transaction(_work)

    def create_table(self, table: str, header: Sequence[str]) -> None:
        if not header:
            raise StoreError(f"table {table!r} needs a non-empty header")
        payload = to_jsonb([str(h) for h in header])
        run_in_transaction(
            lambda conn: execute_conn(
                conn,
                """
                INSERT INTO store_tables (table_name, header)
                VALUES (%s, %s::jsonb)
                ON CONFLICT (table_name) DO NOTHING
                """,
                (table, payload),
            )
        )

    def has_table(self, table: str) -> bool:
        row = run_in_transaction(
            lambda conn: fetch_one_conn(conn, "SELECT 1 FROM store_tables WHERE table_name = %s", (table,))
        )
        return row is not None

    def header(self, table: str) -> list[str]:
        return run_in_transaction(lambda conn: _require(conn, table))

    def data_row_count(self, table: str) -> int:
        def _work(conn: Any) -> int:
            _require(conn, table)
            row = fetch_one_conn(conn, "SELECT COUNT(*) FROM store_rows WHERE table_name = %s", (table,))
            return int(row[0]) if row else 0

        return run_in_transaction(_work)

    def read_rows(self, table: str) -> list[Row]:
        def _work(conn: Any) -> list[Row]:
            _require(conn, table)
            rows = fetch_all_conn(
                conn,
                f"SELECT cells FROM store_rows WHERE table_name = %s ORDER BY {_ORDER}",
                (table,),
            )
            return [list(r[0] or []) for r in rows]

        return run_in_transaction(_work)

    def append_rows(self, table: str, rows: Sequence[Sequence[Cell]]) -> None:
        batch = check_batch(table, rows)

        def _work(conn: Any) -> None:
            _require(conn, table)
            execute_many_conn(
                conn,
                "INSERT INTO store_rows (table_name, cells) VALUES (%s, %s::jsonb)",
                [(table, to_jsonb(row)) for row in batch],
            )

        run_in_transaction(_work)

    def last_row(self, table: str) -> Row | None:
        def _work(conn: Any) -> Row | None:
            _require(conn, table)
            row = fetch_one_conn(
                conn,
                """
                SELECT cells FROM store_rows
                WHERE table_name = %s
                ORDER BY COALESCE(position, row_id) DESC, row_id DESC
                LIMIT 1
                """,
                (table,),
            )
            return list(row[0] or []) if row else None

        return run_in_transaction(_work)

    def sort_data_rows(self, table: str, column: int) -> None:
        def _work(conn: Any) -> None:
            _require(conn, table)
            current = fetch_all_conn(
                conn,
                f"""
                SELECT row_id, COALESCE(position, row_id), cells
                FROM store_rows
                WHERE table_name = %s
                ORDER BY {_ORDER}
                FOR UPDATE
                """,
                (table,),
            )
            if len(current) < 2:
                return
            slots = [int(r[1]) for r in current]
            decoded = [(int(r[0]), list(r[2] or [])) for r in current]
            by_id = {id(cells): row_id for row_id, cells in decoded}
            ordered = sorted_rows([cells for _, cells in decoded], column)
            execute_many_conn(
                conn,
                "UPDATE store_rows SET position = %s WHERE row_id = %s",
                [(slot, by_id[id(cells)]) for slot, cells in zip(slots, ordered)],
            )

        run_in_transaction(_work)

    def clear_data_rows(self, table: str) -> None:
        def _work(conn: Any) -> None:
            _require(conn, table)
            execute_conn(conn, "DELETE FROM store_rows WHERE table_name = %s", (table,))

        run_in_transaction(_work)
