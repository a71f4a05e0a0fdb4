"""Unit tests for the consolidation leases."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import apps.backend.run_lock as run_lock
from pipeline.reconcile_lock import ProcessLease


class _FakeCursor:
    """Cursor stub fed by a per-connection result queue."""

    def __init__(self, conn: _FakeConn) -> None:
        self._conn = conn
        self._rows: list[tuple[Any, ...]] = []
        self.rowcount = 0

    def __enter__(self) -> _FakeCursor:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # type: ignore[no-untyped-def]
        return False

    def execute(self, sql: str, params: tuple[Any, ...] | None = None) -> None:
        self._conn.executes.append((sql, params))
        self._rows = list(self._conn.results.pop(0)) if self._conn.results else []
        self.rowcount = len(self._rows)

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._rows[0] if self._rows else None


class _FakeConn:
    """Connection stub exposing ``cursor()`` and recording SQL calls."""

    def __init__(self, *, results: list[list[tuple[Any, ...]]]) -> None:
        self.results = list(results)
        self.executes: list[tuple[str, tuple[Any, ...] | None]] = []

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)


_EXPIRY = datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_acquire_returns_lock_when_row_is_claimed() -> None:
    """A RETURNING row means the lease is ours."""
    conn = _FakeConn(results=[[("tok-1", _EXPIRY)]])

    lock = run_lock.acquire_run_lock(conn, lock_name="survey-reconcile", owner="me", ttl_seconds=60)

    assert lock == run_lock.RunLock(token="tok-1", expires_at=_EXPIRY)
    sql, params = conn.executes[0]
    assert "ON CONFLICT (lock_name) DO UPDATE" in sql
    assert "run_locks.expires_at <= now()" in sql
    assert params is not None
    assert params[0] == "survey-reconcile"
    assert params[1] == "me"
    assert params[3] == 60


def test_acquire_returns_none_when_held_elsewhere() -> None:
    """No RETURNING row means another live owner holds the lease."""
    conn = _FakeConn(results=[[]])

    assert run_lock.acquire_run_lock(conn, lock_name="x", owner="me", ttl_seconds=60) is None


def test_release_requires_matching_token() -> None:
    """Release reports whether the token-matched row was deleted."""
    conn = _FakeConn(results=[[("deleted",)], []])

    assert run_lock.release_run_lock(conn, lock_name="x", lock_token="tok") is True
    assert run_lock.release_run_lock(conn, lock_name="x", lock_token="stale") is False
    assert "lock_token = %s" in conn.executes[0][0]


def test_default_owner_includes_prefix() -> None:
    """Owner ids identify the process that holds the lease."""
    assert run_lock.default_owner("reconcile").startswith("reconcile:")


def _fake_transactions(monkeypatch: Any, conn: _FakeConn) -> None:
    monkeypatch.setattr(run_lock, "run_in_transaction", lambda work: work(conn))


def test_postgres_lease_acquires_and_releases(monkeypatch: Any) -> None:
    """The lease yields True and deletes its row on exit."""
    conn = _FakeConn(results=[[("tok", _EXPIRY)], [("deleted",)]])
    _fake_transactions(monkeypatch, conn)
    lease = run_lock.PostgresLease(lock_name="survey-reconcile", ttl_seconds=30, owner="me")

    with lease.hold() as acquired:
        assert acquired is True

    assert conn.executes[1][0].strip().startswith("DELETE FROM run_locks")
    assert conn.executes[1][1] == ("survey-reconcile", "tok")


def test_postgres_lease_busy_yields_false_without_release(monkeypatch: Any, caplog: Any) -> None:
    """A held lease yields False and never issues a DELETE."""
    conn = _FakeConn(results=[[]])
    _fake_transactions(monkeypatch, conn)
    lease = run_lock.PostgresLease(lock_name="survey-reconcile", ttl_seconds=30, owner="me")

    with lease.hold() as acquired:
        assert acquired is False

    assert len(conn.executes) == 1
    assert any(r.getMessage() == "reconcile_lease_busy" for r in caplog.records)


def test_postgres_lease_excludes_threads_of_the_same_process(monkeypatch: Any) -> None:
    """Nested holds on one lease object never reach the database twice."""
    conn = _FakeConn(results=[[("tok", _EXPIRY)], [("deleted",)]])
    _fake_transactions(monkeypatch, conn)
    lease = run_lock.PostgresLease(lock_name="survey-reconcile", ttl_seconds=30, owner="me")

    with lease.hold() as outer:
        with lease.hold() as inner:
            assert outer is True
            assert inner is False

    assert len(conn.executes) == 2


def test_postgres_lease_warns_when_lease_was_lost(monkeypatch: Any, caplog: Any) -> None:
    """A release that deletes nothing is logged as a lost lease."""
    conn = _FakeConn(results=[[("tok", _EXPIRY)], []])
    _fake_transactions(monkeypatch, conn)
    lease = run_lock.PostgresLease(lock_name="survey-reconcile", ttl_seconds=30, owner="me")

    with lease.hold():
        pass

    assert any(r.getMessage() == "reconcile_lease_lost" for r in caplog.records)


def test_postgres_lease_warns_when_run_outlasts_ttl(monkeypatch: Any, caplog: Any) -> None:
    """A run longer than the TTL is logged, since the row may have been taken over."""
    conn = _FakeConn(results=[[("tok", _EXPIRY)], [("deleted",)]])
    _fake_transactions(monkeypatch, conn)
    readings = iter([100.0, 131.0])
    monkeypatch.setattr(run_lock, "time", SimpleNamespace(monotonic=lambda: next(readings)))
    lease = run_lock.PostgresLease(lock_name="survey-reconcile", ttl_seconds=30, owner="me")

    with lease.hold() as acquired:
        assert acquired is True

    overruns = [r for r in caplog.records if r.getMessage() == "reconcile_lease_overrun"]
    assert len(overruns) == 1
    assert overruns[0].elapsed_seconds == 31.0
    assert overruns[0].ttl_seconds == 30


def test_postgres_lease_short_run_is_not_an_overrun(monkeypatch: Any, caplog: Any) -> None:
    """Runs within the TTL release quietly."""
    conn = _FakeConn(results=[[("tok", _EXPIRY)], [("deleted",)]])
    _fake_transactions(monkeypatch, conn)
    readings = iter([100.0, 105.0])
    monkeypatch.setattr(run_lock, "time", SimpleNamespace(monotonic=lambda: next(readings)))
    lease = run_lock.PostgresLease(lock_name="survey-reconcile", ttl_seconds=30, owner="me")

    with lease.hold():
        pass

    assert not any(r.getMessage() == "reconcile_lease_overrun" for r in caplog.records)


def test_process_lease_is_non_blocking_and_reentrant_safe() -> None:
    """A second hold while held yields False and the lock is released after."""
    lease = ProcessLease()

    with lease.hold() as first:
        with lease.hold() as second:
            assert first is True
            assert second is False
        assert lease.locked()

    assert not lease.locked()
