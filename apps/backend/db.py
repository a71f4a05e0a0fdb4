"""
db.py

Small PostgreSQL helper module (psycopg2) with a process-global connection pool.

The Postgres table store and the consolidation lease both borrow connections
from here. Helpers never commit on their own except ``run_in_transaction``;
callers own the transaction boundary.

Settings
--------
- DB_URL (required for the postgres backend)
- DB_POOL_MAXCONN (default 10)
- DB_CONNECT_TIMEOUT (default 5 seconds)
"""

from __future__ import annotations

import atexit
import json
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Optional, Tuple, TypeVar

from apps.backend.db_metrics import measure_query
from contracts.errors import ConfigurationError
from infra.config import get_settings

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# One pool per process, rebuilt when the DSN changes.
_POOL = None
_POOL_DSN: Optional[str] = None


def _db_url() -> str:
    url = str(get_settings().db.url or "").strip()
    if not url:
        raise ConfigurationError("DB_URL is not set; the postgres store backend needs it")
    return url


def _get_pool():
    """Shared ThreadedConnectionPool; rebuilt if DB_URL changed since the last call."""
    global _POOL, _POOL_DSN

    dsn = _db_url()
    if _POOL is not None and _POOL_DSN == dsn:
        return _POOL

    from psycopg2.pool import ThreadedConnectionPool  # type: ignore

    db_settings = get_settings().db
    _POOL = ThreadedConnectionPool(
        minconn=1,
        maxconn=db_settings.pool_maxconn,
        dsn=dsn,
        connect_timeout=db_settings.connect_timeout,
    )
    _POOL_DSN = dsn
    return _POOL


def _close_pool() -> None:
    global _POOL
    try:
        if _POOL is not None:
            _POOL.closeall()
    except Exception as exc:  # pragma: no cover - interpreter shutdown path
        _LOGGER.debug("pool close failed: %s", exc)
    finally:
        _POOL = None


atexit.register(_close_pool)


@contextmanager
def db_conn() -> Iterator[Any]:
    """Yield a pooled psycopg2 connection.

    Callers should NOT close the connection; it is returned to the pool.
    Any transaction left open by the caller is rolled back first so the next
    borrower never inherits a stale snapshot.
    """
    pool = _get_pool()
    conn = pool.getconn()
    try:
        yield conn
    finally:
        try:
            conn.rollback()
        except Exception as exc:
            _LOGGER.debug("rollback before putconn failed: %s", exc)
        try:
            pool.putconn(conn)
        except Exception as exc:
            _LOGGER.warning("putconn failed, closing connection: %s", exc)
            try:
                conn.close()
            except Exception as close_exc:
                _LOGGER.debug("close after failed putconn failed: %s", close_exc)


def _query_name(sql: str, *, operation: str) -> str:
    """Metric label: helper name plus the statement verb, e.g. ``fetch_all_conn:select``."""
    words = str(sql or "").split()
    return f"{operation}:{words[0].lower()}" if words else operation


# ---------------------------
# Statement helpers
# ---------------------------

def _timed_execute(cur: Any, operation: str, sql: str, params: Optional[Sequence[Any]]) -> None:
    with measure_query(_query_name(sql, operation=operation)):
        cur.execute(sql, params or ())


def fetch_one_conn(conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Tuple[Any, ...]]:
    """First result row, or None."""
    with conn.cursor() as cur:
        _timed_execute(cur, "fetch_one_conn", sql, params)
        return cur.fetchone()


def fetch_all_conn(conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> list[Tuple[Any, ...]]:
    """All result rows as a list."""
    with conn.cursor() as cur:
        _timed_execute(cur, "fetch_all_conn", sql, params)
        return list(cur.fetchall())


def execute_conn(conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> int:
    """Run a statement; return the number of affected rows."""
    with conn.cursor() as cur:
        _timed_execute(cur, "execute_conn", sql, params)
        return int(cur.rowcount or 0)


def execute_many_conn(conn: Any, sql: str, seq_of_params: list[Sequence[Any]]) -> None:
    """Run one statement per parameter set; an empty list issues nothing."""
    if not seq_of_params:
        return
    with conn.cursor() as cur, measure_query(_query_name(sql, operation="execute_many_conn")):
        cur.executemany(sql, seq_of_params)


def run_in_transaction(work: Callable[[Any], T]) -> T:
    """Run ``work(conn)`` on a pooled connection and commit, rolling back on error."""
    with db_conn() as conn:
        try:
            result = work(conn)
            conn.commit()
            return result
        except Exception:
            try:
                conn.rollback()
            except Exception as rb_exc:
                _LOGGER.warning("rollback failed after transaction error: %s", rb_exc)
            raise


def to_jsonb(value: Any) -> str:
    """Compact JSON text for a ``%s::jsonb`` parameter."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
