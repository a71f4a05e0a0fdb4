"""Typed Parquet snapshot of the consolidated output tables.

Analysts read the Response/Subject/Subject-Peer/Records tables as Parquet. Each
export overwrites ``{out_dir}/{table}.parquet`` with the table's current rows:

- id columns (``response_id``, ``subject_id``, ``peer_id``) are written as int64
- payload cells are written as nullable strings named ``<header>_<n>`` (1-based),
  since payload width and cell types vary between surveys
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from contracts.interfaces import TableStore
from contracts.schema import (
    OUTPUT_TABLES,
    RECORDS_TABLE,
    RESPONSES_TABLE,
    SUBJECT_PEERS_TABLE,
    SUBJECTS_TABLE,
    Row,
    as_number,
)
from infra.logging_config import StructuredLogger
from version import ENGINE_NAME, ENGINE_VERSION, SCHEMA_VERSION

logger = StructuredLogger(__name__)

ID_COLUMN_COUNTS: Dict[str, int] = {
    RESPONSES_TABLE: 1,
    SUBJECTS_TABLE: 1,
    SUBJECT_PEERS_TABLE: 2,
    RECORDS_TABLE: 3,
}


class ParquetExportError(RuntimeError):
    """Raised when an output table cannot be exported."""


@dataclass
class ParquetExportStats:
    rows_by_table: Dict[str, int] = field(default_factory=dict)
    files: List[str] = field(default_factory=list)


def _id_value(table: str, value: Any) -> int:
    number = as_number(value)
    if number is None or number != number.to_integral_value():
        raise ParquetExportError(f"{table}: non-integer id cell {value!r}")
    return int(number)


def _payload_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_arrow_table(table: str, header: Sequence[str], rows: Sequence[Row]) -> pa.Table:
    """Convert one output table's rows into an Arrow table."""
    id_count = ID_COLUMN_COUNTS[table]
    id_names = list(header[:id_count])
    payload_prefix = header[id_count] if len(header) > id_count else "field"
    width = max((len(row) - id_count for row in rows), default=0)
    payload_names = [f"{payload_prefix}_{i}" for i in range(1, width + 1)] if width > 0 else []

    fields = [pa.field(name, pa.int64(), nullable=False) for name in id_names]
    fields += [pa.field(name, pa.string()) for name in payload_names]
    schema = pa.schema(
        fields,
        metadata={
            "engine_name": ENGINE_NAME,
            "engine_version": ENGINE_VERSION,
            "schema_version": str(SCHEMA_VERSION),
            "table": table,
        },
    )

    columns: Dict[str, List[Any]] = {name: [] for name in id_names + payload_names}
    for row in rows:
        if len(row) < id_count:
            raise ParquetExportError(f"{table}: row {row!r} is missing id columns")
        for i, name in enumerate(id_names):
            columns[name].append(_id_value(table, row[i]))
        payload = row[id_count:]
        for i, name in enumerate(payload_names):
            columns[name].append(_payload_value(payload[i]) if i < len(payload) else None)

    return pa.Table.from_pydict(columns, schema=schema)


def export_output_tables(
    store: TableStore,
    out_dir: str,
    *,
    compression: str = "zstd",
) -> ParquetExportStats:
    """Write every output table to ``{out_dir}/{table}.parquet``."""
    os.makedirs(out_dir, exist_ok=True)
    stats = ParquetExportStats()
    for table in OUTPUT_TABLES:
        rows = store.read_rows(table)
        arrow_table = build_arrow_table(table, store.header(table), rows)
        out_path = os.path.join(out_dir, f"{table}.parquet")
        pq.write_table(arrow_table, out_path, compression=compression, write_statistics=True)
        stats.rows_by_table[table] = arrow_table.num_rows
        stats.files.append(out_path)

    logger.info("output_tables_exported", out_dir=out_dir, rows=stats.rows_by_table)
    return stats
