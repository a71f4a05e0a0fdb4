"""Tests for wiring the configured store, availability flag and lease."""

from __future__ import annotations

from pathlib import Path

from apps.backend.run_lock import PostgresLease
from apps.backend.runtime import build_lease, build_runtime
from contracts.schema import STAGING_TABLES, STATUS_TABLE
from infra.config import Settings
from pipeline.duckdb_store import DuckDBTableStore
from pipeline.memory_store import InMemoryTableStore
from pipeline.reconcile_lock import ProcessLease


def _settings(**env: str) -> Settings:
    return Settings.from_env(env=env, env_file=".missing.env")


def test_memory_runtime_bootstraps_every_table() -> None:
    """The runtime's store already holds staging, output and status tables."""
    rt = build_runtime(_settings(STORE_BACKEND="memory"))

    assert isinstance(rt.store, InMemoryTableStore)
    assert rt.backend == "memory"
    for table in (*STAGING_TABLES, STATUS_TABLE):
        assert rt.store.has_table(table)
    assert isinstance(rt.lease, ProcessLease)
    assert rt.availability.is_active() is False


def test_duckdb_runtime_uses_configured_path(tmp_path: Path) -> None:
    """The DuckDB backend opens the configured database file."""
    path = tmp_path / "survey.duckdb"

    rt = build_runtime(_settings(STORE_BACKEND="duckdb", STORE_DUCKDB_PATH=str(path)))
    try:
        assert isinstance(rt.store, DuckDBTableStore)
        assert path.exists()
    finally:
        rt.store.close()


def test_postgres_backend_gets_a_database_lease() -> None:
    """Cross-process exclusion is used only for the shared Postgres store."""
    lease = build_lease(_settings(STORE_BACKEND="postgres", RECONCILE_LOCK_NAME="nightly"))

    assert isinstance(lease, PostgresLease)
    assert isinstance(build_lease(_settings(STORE_BACKEND="duckdb")), ProcessLease)
