"""Process-wide runtime used by the API blueprints.

Built lazily from settings on first request; tests inject their own runtime
with ``set_runtime``.
"""

from __future__ import annotations

import threading

from apps.backend.runtime import Runtime, build_runtime

_RUNTIME_LOCK = threading.Lock()
_RUNTIME: Runtime | None = None


def get_runtime() -> Runtime:
    global _RUNTIME
    with _RUNTIME_LOCK:
        if _RUNTIME is None:
            _RUNTIME = build_runtime()
        return _RUNTIME


def set_runtime(runtime: Runtime | None) -> None:
    """Replace (or reset with None) the runtime used by request handlers."""
    global _RUNTIME
    with _RUNTIME_LOCK:
        _RUNTIME = runtime
