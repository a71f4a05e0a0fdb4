"""
db_metrics.py

Timing for statements issued through ``apps.backend.db``.

Each statement is timed when ``DB_QUERY_METRICS_ENABLED`` is on (default).
Anything at or above ``DB_SLOW_QUERY_THRESHOLD_MS`` is logged as a warning,
and every observation can be forwarded to a deployment's metrics system via
``register_histogram_emitter``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from infra.config import get_settings

_LOGGER = logging.getLogger(__name__)

QUERY_DURATION_METRIC = "db_query_duration_ms"

HistogramEmitter = Callable[[str, float, Sequence[str]], None]
_emitter: HistogramEmitter | None = None


def register_histogram_emitter(emitter: HistogramEmitter | None) -> None:
    """Install (or remove, with None) the callback receiving ``(metric, ms, tags)``.

    Tags look like ``["query:fetch_all_conn:select"]``.
    """
    global _emitter
    _emitter = emitter


def _observe(duration_ms: float, query_name: str) -> None:
    if _emitter is None:
        return
    try:
        _emitter(QUERY_DURATION_METRIC, duration_ms, [f"query:{query_name}"])
    except (TypeError, ValueError, RuntimeError) as exc:
        _LOGGER.debug("histogram emitter failed for %s: %s", query_name, exc)


@contextmanager
def measure_query(name: str) -> Iterator[None]:
    """Time the enclosed statement under the label *name*."""
    cfg = get_settings().db_metrics
    if not cfg.metrics_enabled:
        yield
        return

    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if elapsed_ms >= cfg.slow_query_threshold_ms:
            _LOGGER.warning("slow_query query_name=%s duration_ms=%.2f", name, elapsed_ms)
        _observe(elapsed_ms, name)
