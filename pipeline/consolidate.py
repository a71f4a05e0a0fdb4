"""Consolidation run: the operator action that drains staging into output tables.

Order of operations
-------------------
1. Refuse (no-op) while the survey is active: writers may still be appending.
2. Take the consolidation lease; a concurrent run makes this one a no-op.
3. Read the three staging queues ordered by correlation key.
4. Read the last Subject and Response ids once.
5. Build the output row sets in memory.
6. Write outputs, then clear staging (see ``pipeline.commit_guard``).

Failures are logged and re-raised to the caller.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any

from contracts.interfaces import AvailabilityStatus, ReconcileLease, TableStore
from contracts.schema import (
    PEER_QUEUE,
    RESPONSES_QUEUE,
    RESPONSES_TABLE,
    SUBJECT_QUEUE,
    SUBJECTS_TABLE,
    Cell,
)
from infra.logging_config import StructuredLogger
from pipeline.commit_guard import commit_and_clear
from pipeline.reconciler import build_output_row_sets
from pipeline.sequence import last_assigned_id
from pipeline.staging_reader import read_staged_rows

logger = StructuredLogger(__name__)

STATUS_COMMITTED = "committed"
STATUS_EMPTY = "empty"
STATUS_SKIPPED_ACTIVE = "skipped_active"
STATUS_SKIPPED_LOCKED = "skipped_locked"


@dataclass
class ReconcileResult:
    """Outcome of one consolidation run."""

    status: str
    subjects: int = 0
    responses: int = 0
    peers: int = 0
    records: int = 0
    first_subject_id: int | None = None
    last_subject_id: int | None = None
    mismatches: int = 0
    orphan_keys: list[Cell] = field(default_factory=list)
    tables_written: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def reconcile(
    store: TableStore,
    availability: AvailabilityStatus,
    lease: ReconcileLease,
) -> ReconcileResult:
    """Consolidate all staged submissions into the output tables."""
    if availability.is_active():
        logger.info("reconcile_skipped", reason="survey_active")
        return ReconcileResult(status=STATUS_SKIPPED_ACTIVE)

    with lease.hold() as acquired:
        if not acquired:
            logger.warning("reconcile_skipped", reason="run_in_progress")
            return ReconcileResult(status=STATUS_SKIPPED_LOCKED)
        try:
            return _run(store)
        except Exception as exc:
            logger.exception("reconcile_failed", error=str(exc), error_type=type(exc).__name__)
            raise


def _run(store: TableStore) -> ReconcileResult:
    started = time.perf_counter()

    subject_rows = read_staged_rows(store, SUBJECT_QUEUE)
    response_rows = read_staged_rows(store, RESPONSES_QUEUE)
    peer_rows = read_staged_rows(store, PEER_QUEUE)

    if not (subject_rows or response_rows or peer_rows):
        logger.info("reconcile_completed", status=STATUS_EMPTY, subjects=0, responses=0, peers=0)
        return ReconcileResult(status=STATUS_EMPTY)

    start_subject_id = last_assigned_id(store, SUBJECTS_TABLE)
    start_response_id = last_assigned_id(store, RESPONSES_TABLE)

    plan = build_output_row_sets(
        subject_rows,
        response_rows,
        peer_rows,
        start_subject_id=start_subject_id,
        start_response_id=start_response_id,
    )
    written = commit_and_clear(store, plan.row_sets)

    row_sets = plan.row_sets
    result = ReconcileResult(
        status=STATUS_COMMITTED,
        subjects=len(row_sets.subjects),
        responses=len(row_sets.responses),
        peers=len(row_sets.subject_peers),
        records=len(row_sets.records),
        first_subject_id=start_subject_id + 1 if row_sets.subjects else None,
        last_subject_id=plan.last_subject_id if row_sets.subjects else None,
        mismatches=len(plan.mismatches),
        orphan_keys=list(plan.orphan_keys),
        tables_written=written,
        duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
    )
    logger.info(
        "reconcile_completed",
        status=result.status,
        subjects=result.subjects,
        responses=result.responses,
        peers=result.peers,
        records=result.records,
        mismatches=result.mismatches,
        orphans=len(result.orphan_keys),
        duration_ms=result.duration_ms,
    )
    return result
