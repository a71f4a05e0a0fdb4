"""Wire the configured store backend, availability flag and lease together.

Entrypoints (CLI, Flask app) ask for one ``Runtime`` and pass its parts to the
pipeline functions; tests build a ``Runtime`` around an in-memory store.
"""

from __future__ import annotations

from dataclasses import dataclass

from contracts.interfaces import ReconcileLease, TableStore
from infra.config import Settings, get_settings
from pipeline.availability import StoreAvailabilityFlag
from pipeline.reconcile_lock import ProcessLease
from pipeline.store_base import ensure_survey_tables


@dataclass
class Runtime:
    store: TableStore
    availability: StoreAvailabilityFlag
    lease: ReconcileLease
    backend: str


def open_store(settings: Settings) -> TableStore:
    """Instantiate the store backend named by ``settings.store.backend``."""
    backend = settings.store.backend
    if backend == "memory":
        from pipeline.memory_store import InMemoryTableStore

        return InMemoryTableStore()
    if backend == "duckdb":
        from pipeline.duckdb_store import DuckDBConfig, DuckDBTableStore

        return DuckDBTableStore(DuckDBConfig(database=settings.store.duckdb_path))

    from apps.backend.pg_table_store import PostgresTableStore

    store = PostgresTableStore()
    store.ensure_schema()
    return store


def build_lease(settings: Settings) -> ReconcileLease:
    if settings.store.backend == "postgres":
        from apps.backend.run_lock import PostgresLease

        return PostgresLease(
            lock_name=settings.reconcile.lock_name,
            ttl_seconds=settings.reconcile.lock_ttl_seconds,
        )
    return ProcessLease()


def build_runtime(settings: Settings | None = None) -> Runtime:
    """Open the store, create any missing survey tables, and build collaborators."""
    settings = settings or get_settings()
    store = open_store(settings)
    ensure_survey_tables(store)
    return Runtime(
        store=store,
        availability=StoreAvailabilityFlag(store),
        lease=build_lease(settings),
        backend=settings.store.backend,
    )


def runtime_from_store(store: TableStore, *, backend: str = "memory") -> Runtime:
    """Build a runtime around an existing store (process-local lease)."""
    ensure_survey_tables(store)
    return Runtime(
        store=store,
        availability=StoreAvailabilityFlag(store),
        lease=ProcessLease(),
        backend=backend,
    )
