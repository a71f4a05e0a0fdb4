"""DuckDB-backed ``TableStore``.

Keeps every survey table inside one DuckDB database file:

- ``store_tables``: one row per table with its JSON-encoded header
- ``store_rows``: data rows as JSON-encoded cell arrays

Row order is ``COALESCE(position, row_id)``. Appends leave ``position`` NULL so
the sequence-assigned ``row_id`` orders them after everything already stored;
``sort_data_rows`` rewrites ``position`` with a permutation of the existing
order values, so later appends still land at the end.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import duckdb

from contracts.errors import StoreError, TableNotFoundError
from contracts.schema import Cell, Row
from pipeline.store_base import check_batch, sorted_rows

_SCHEMA_STATEMENTS = (
    "CREATE SEQUENCE IF NOT EXISTS store_row_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS store_tables (
        table_name VARCHAR PRIMARY KEY,
        header VARCHAR NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS store_rows (
        row_id BIGINT PRIMARY KEY DEFAULT nextval('store_row_seq'),
        table_name VARCHAR NOT NULL,
        position BIGINT,
        cells VARCHAR NOT NULL
    )
    """,
)

_ORDER = "COALESCE(position, row_id), row_id"


@dataclass(frozen=True)
class DuckDBConfig:
    database: str = ":memory:"  # or a file path, e.g. data/survey.duckdb
    threads: int = 2


def _encode(cells: Sequence[Cell]) -> str:
    return json.dumps(list(cells), ensure_ascii=False, separators=(",", ":"))


def _decode(raw: Any) -> Row:
    value = json.loads(raw) if isinstance(raw, str) else raw
    return list(value or [])


@contextmanager
def _store_errors(action: str, target: str) -> Iterator[None]:
    """Re-raise DuckDB failures (lock conflicts, closed connections) as ``StoreError``."""
    try:
        yield
    except duckdb.Error as exc:
        raise StoreError(f"duckdb {action} failed for {target}: {exc}") from exc


class DuckDBTableStore:
    """
    Tabular store over a single DuckDB connection.

    DuckDB connections are not safe to share across threads, so every method
    runs under one lock. The database file is locked by the opening process
    for as long as the store is open; a second process gets ``StoreError``.
    """

    def __init__(self, cfg: DuckDBConfig) -> None:
        self._cfg = cfg
        if cfg.database != ":memory:":
            parent = os.path.dirname(os.path.abspath(cfg.database))
            os.makedirs(parent, exist_ok=True)
        self._lock = threading.Lock()
        with _store_errors("open", cfg.database):
            self._con = duckdb.connect(cfg.database, read_only=False)
            self._con.execute(f"PRAGMA threads={int(cfg.threads)};")
            for stmt in _SCHEMA_STATEMENTS:
                self._con.execute(stmt)

    def close(self) -> None:
        with self._lock:
            self._con.close()

    # -------------------------
    # Internal helpers
    # -------------------------

    def _require(self, table: str) -> list[str]:
        row = self._con.execute(
            "SELECT header FROM store_tables WHERE table_name = ?", [table]
        ).fetchone()
        if row is None:
            raise TableNotFoundError(table)
        return [str(h) for h in json.loads(row[0])]

    def _ordered(self, table: str) -> list[tuple[int, int, str]]:
        return self._con.execute(
            f"SELECT row_id, COALESCE(position, row_id), cells FROM store_rows "
            f"WHERE table_name = ? ORDER BY {_ORDER}",
            [table],
        ).fetchall()

    def _in_transaction(self, work) -> None:  # type: ignore[no-untyped-def]
        self._con.begin()
        try:
            work()
        except Exception:
            self._con.rollback()
            raise
        self._con.commit()

    # -------------------------
    # TableStore
    # -------------------------

    def create_table(self, table: str, header: Sequence[str]) -> None:
        if not header:
            raise StoreError(f"table {table!r} needs a non-empty header")
        with self._lock, _store_errors("create_table", table):
            self._con.execute(
                "INSERT INTO store_tables (table_name, header) VALUES (?, ?) ON CONFLICT DO NOTHING",
                [table, json.dumps([str(h) for h in header])],
            )

    def has_table(self, table: str) -> bool:
        with self._lock, _store_errors("has_table", table):
            row = self._con.execute(
                "SELECT 1 FROM store_tables WHERE table_name = ?", [table]
            ).fetchone()
            return row is not None

    def header(self, table: str) -> list[str]:
        with self._lock, _store_errors("header", table):
            return self._require(table)

    def data_row_count(self, table: str) -> int:
        with self._lock, _store_errors("data_row_count", table):
            self._require(table)
            row = self._con.execute(
                "SELECT COUNT(*) FROM store_rows WHERE table_name = ?", [table]
            ).fetchone()
            return int(row[0]) if row else 0

    def read_rows(self, table: str) -> list[Row]:
        with self._lock, _store_errors("read_rows", table):
            self._require(table)
            return [_decode(cells) for _, _, cells in self._ordered(table)]

    def append_rows(self, table: str, rows: Sequence[Sequence[Cell]]) -> None:
        batch = check_batch(table, rows)
        with self._lock, _store_errors("append_rows", table):
            self._require(table)
            params = [[table, _encode(row)] for row in batch]
            self._in_transaction(
                lambda: self._con.executemany(
                    "INSERT INTO store_rows (table_name, cells) VALUES (?, ?)", params
                )
            )

    def last_row(self, table: str) -> Row | None:
        with self._lock, _store_errors("last_row", table):
            self._require(table)
            row = self._con.execute(
                f"SELECT cells FROM store_rows WHERE table_name = ? "
                f"ORDER BY COALESCE(position, row_id) DESC, row_id DESC LIMIT 1",
                [table],
            ).fetchone()
            return _decode(row[0]) if row else None

    def sort_data_rows(self, table: str, column: int) -> None:
        with self._lock, _store_errors("sort_data_rows", table):
            self._require(table)
            current = self._ordered(table)
            if len(current) < 2:
                return
            slots = [order for _, order, _ in current]
            decoded = [(row_id, _decode(cells)) for row_id, _, cells in current]
            by_id = {id(cells): row_id for row_id, cells in decoded}
            ordered = sorted_rows([cells for _, cells in decoded], column)
            params = [[slot, by_id[id(cells)]] for slot, cells in zip(slots, ordered)]
            self._in_transaction(
                lambda: self._con.executemany(
                    "UPDATE store_rows SET position = ? WHERE row_id = ?", params
                )
            )

    def clear_data_rows(self, table: str) -> None:
        with self._lock, _store_errors("clear_data_rows", table):
            self._require(table)
            self._con.execute("DELETE FROM store_rows WHERE table_name = ?", [table])
