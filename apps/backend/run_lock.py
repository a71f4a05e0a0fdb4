"""Consolidation lease stored in Postgres.

A lease is one row in ``run_locks`` keyed by lock name. Acquisition succeeds
when the row is absent, expired, or already held by the same owner; the TTL
bounds how long a crashed run can block the next one. Release only deletes
the row when the caller still holds the matching token.

The row is not refreshed while a run is in progress, so the TTL
(``RECONCILE_LOCK_TTL_SECONDS``) is also the longest a run may take before
another process can take the lease over. Runs that outlast it are logged as
``reconcile_lease_overrun``.
"""

from __future__ import annotations

import os
import socket
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from apps.backend.db import fetch_one_conn, execute_conn, run_in_transaction
from infra.logging_config import StructuredLogger
from pipeline.reconcile_lock import ProcessLease

logger = StructuredLogger(__name__)


@dataclass(frozen=True)
class RunLock:
    """Lock token and expiry returned by lock acquisition."""

    token: str
    expires_at: datetime


def default_owner(prefix: str) -> str:
    """Build a lock owner id for this process."""
    return f"{prefix}:{socket.gethostname()}:{os.getpid()}"


def acquire_run_lock(conn: Any, *, lock_name: str, owner: str, ttl_seconds: int) -> Optional[RunLock]:
    """Acquire/refresh *lock_name* if free or expired.

    Returns ``None`` when another non-expired owner already holds the lock.
    """
    token = uuid.uuid4().hex
    row = fetch_one_conn(
        conn,
        """
        INSERT INTO run_locks (lock_name, lock_owner, lock_token, acquired_at, expires_at)
        VALUES (%s, %s, %s, now(), now() + make_interval(secs => %s))
        ON CONFLICT (lock_name) DO UPDATE SET
          lock_owner = EXCLUDED.lock_owner,
          lock_token = EXCLUDED.lock_token,
          acquired_at = now(),
          expires_at = EXCLUDED.expires_at
        WHERE run_locks.expires_at <= now()
           OR run_locks.lock_owner = EXCLUDED.lock_owner
        RETURNING lock_token, expires_at
        """,
        (lock_name, owner, token, int(ttl_seconds)),
    )
    if not row:
        return None
    return RunLock(token=str(row[0]), expires_at=row[1])


def release_run_lock(conn: Any, *, lock_name: str, lock_token: str) -> bool:
    """Release *lock_name* only when the token matches."""
    deleted = execute_conn(
        conn,
        "DELETE FROM run_locks WHERE lock_name = %s AND lock_token = %s",
        (lock_name, lock_token),
    )
    return deleted > 0


class PostgresLease:
    """``ReconcileLease`` backed by ``run_locks``; shared by every process on the database."""

    def __init__(self, *, lock_name: str, ttl_seconds: int, owner: str | None = None) -> None:
        self._lock_name = lock_name
        self._ttl_seconds = int(ttl_seconds)
        self._owner = owner or default_owner("reconcile")
        self._local = ProcessLease()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        # Threads of one process share an owner id, so they are excluded locally first.
        with self._local.hold() as local:
            if not local:
                logger.warning("reconcile_lease_busy", lock_name=self._lock_name, owner=self._owner)
                yield False
                return
            with self._hold_row() as acquired:
                yield acquired

    @contextmanager
    def _hold_row(self) -> Iterator[bool]:
        lock = run_in_transaction(
            lambda conn: acquire_run_lock(
                conn, lock_name=self._lock_name, owner=self._owner, ttl_seconds=self._ttl_seconds
            )
        )
        if lock is None:
            logger.warning("reconcile_lease_busy", lock_name=self._lock_name, owner=self._owner)
            yield False
            return
        started = time.monotonic()
        try:
            yield True
        finally:
            elapsed = time.monotonic() - started
            if elapsed >= self._ttl_seconds:
                logger.warning(
                    "reconcile_lease_overrun",
                    lock_name=self._lock_name,
                    owner=self._owner,
                    elapsed_seconds=round(elapsed, 1),
                    ttl_seconds=self._ttl_seconds,
                )
            released = run_in_transaction(
                lambda conn: release_run_lock(conn, lock_name=self._lock_name, lock_token=lock.token)
            )
            if not released:
                logger.warning("reconcile_lease_lost", lock_name=self._lock_name, owner=self._owner)
