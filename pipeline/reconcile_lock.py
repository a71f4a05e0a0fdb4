"""In-process consolidation lease.

Guards against two consolidation runs overlapping inside one process (for
example two operator requests hitting the Flask app at once). Cross-process
exclusion on Postgres is provided by ``apps.backend.run_lock.PostgresLease``.
The survey availability flag is a separate signal and is not consulted here.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class ProcessLease:
    """Non-blocking ``threading.Lock`` exposed as a ``ReconcileLease``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()
