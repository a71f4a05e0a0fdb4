"""Reconciler: turn staged rows into normalized, ID-linked output row sets.

Pure in-memory step of a consolidation run. Inputs are the three staging
queues already ordered by correlation key plus the last ids found in the
Subject and Response output tables. Nothing is read from or written to the
store here.

Algorithm
---------
1. Group response and peer rows by correlation key once (key -> rows).
2. Walk subject rows in order; each one is a submission and gets the next
   ``subject_id``.
3. Pair the submission's peer and response rows by position, up to the
   shorter list. Each pair gets the next ``response_id`` and a ``peer_id``
   counted from 1 within the submission.
4. Count mismatches are reported and logged, never raised; unpaired trailing
   rows are dropped from the output.

Response/peer groups with no subject row (a submission whose subject append
never landed) are reported as orphans.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from contracts.schema import KEY_COLUMN, Cell, Row, key_token
from infra.logging_config import StructuredLogger

logger = StructuredLogger(__name__)


@dataclass
class OutputRowSets:
    """Rows destined for the four output tables, in write order."""

    responses: list[Row] = field(default_factory=list)
    subjects: list[Row] = field(default_factory=list)
    subject_peers: list[Row] = field(default_factory=list)
    records: list[Row] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.responses or self.subjects or self.subject_peers or self.records)


@dataclass(frozen=True)
class CountMismatch:
    """A submission whose peer and response counts differ."""

    key: Cell
    subject_id: int
    responses: int
    peers: int

    @property
    def paired(self) -> int:
        return min(self.responses, self.peers)


@dataclass
class ReconcilePlan:
    row_sets: OutputRowSets
    mismatches: list[CountMismatch] = field(default_factory=list)
    orphan_keys: list[Cell] = field(default_factory=list)
    last_subject_id: int = 0
    last_response_id: int = 0


def _group_by_key(rows: Sequence[Row]) -> dict[str, list[Row]]:
    groups: dict[str, list[Row]] = {}
    for row in rows:
        if not row:
            continue
        groups.setdefault(key_token(row[KEY_COLUMN]), []).append(row)
    return groups


def _orphans(groups: dict[str, list[Row]], seen: set[str], found: dict[str, Cell]) -> None:
    for token, rows in groups.items():
        if token not in seen and token not in found:
            found[token] = rows[0][KEY_COLUMN]


def build_output_row_sets(
    subject_rows: Sequence[Row],
    response_rows: Sequence[Row],
    peer_rows: Sequence[Row],
    *,
    start_subject_id: int,
    start_response_id: int,
) -> ReconcilePlan:
    """Build output row sets from key-ordered staging rows.

    ``start_subject_id``/``start_response_id`` are the last ids already in the
    output tables; the first new submission gets ``start_subject_id + 1``.
    """
    responses_by_key = _group_by_key(response_rows)
    peers_by_key = _group_by_key(peer_rows)

    row_sets = OutputRowSets()
    mismatches: list[CountMismatch] = []
    seen: set[str] = set()

    subject_id = int(start_subject_id)
    response_id = int(start_response_id)

    for subject_row in subject_rows:
        if not subject_row:
            continue
        key = subject_row[KEY_COLUMN]
        token = key_token(key)
        seen.add(token)

        subject_id += 1
        row_sets.subjects.append([subject_id, *subject_row[1:]])

        responses = responses_by_key.get(token, [])
        peers = peers_by_key.get(token, [])
        if len(responses) != len(peers):
            mismatch = CountMismatch(key=key, subject_id=subject_id, responses=len(responses), peers=len(peers))
            mismatches.append(mismatch)
            logger.warning(
                "reconcile_count_mismatch",
                submission_key=key,
                subject_id=subject_id,
                responses=mismatch.responses,
                peers=mismatch.peers,
                paired=mismatch.paired,
            )

        for index, (peer, response) in enumerate(zip(peers, responses)):
            response_id += 1
            peer_id = index + 1
            row_sets.responses.append([response_id, *response[1:]])
            row_sets.subject_peers.append([subject_id, peer_id, *peer[1:]])
            row_sets.records.append([response_id, subject_id, peer_id])

    found: dict[str, Cell] = {}
    _orphans(responses_by_key, seen, found)
    _orphans(peers_by_key, seen, found)
    orphan_keys = list(found.values())
    if orphan_keys:
        logger.warning("reconcile_orphan_rows", orphan_keys=orphan_keys, count=len(orphan_keys))

    return ReconcilePlan(
        row_sets=row_sets,
        mismatches=mismatches,
        orphan_keys=orphan_keys,
        last_subject_id=subject_id,
        last_response_id=response_id,
    )
