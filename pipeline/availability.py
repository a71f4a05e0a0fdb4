"""Survey availability flag.

The flag is advisory: while the survey is active, submissions are accepted
and consolidation is refused; operators flip it off before consolidating.
State changes are appended to the ``survey_status`` table, so the latest row
is the current state and the table doubles as an audit trail.
"""

from __future__ import annotations

from datetime import UTC, datetime

from contracts.interfaces import TableStore
from contracts.schema import STATUS_TABLE
from infra.logging_config import StructuredLogger

logger = StructuredLogger(__name__)

STATE_ACTIVE = "active"
STATE_INACTIVE = "inactive"


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class StoreAvailabilityFlag:
    """Availability persisted as an append-only log in the table store.

    A survey with no recorded state is inactive.
    """

    def __init__(self, store: TableStore, *, table: str = STATUS_TABLE) -> None:
        self._store = store
        self._table = table

    def is_active(self) -> bool:
        last = self._store.last_row(self._table)
        if not last:
            return False
        return str(last[0]).strip().lower() == STATE_ACTIVE

    def set_active(self, active: bool, *, actor: str = "operator") -> str:
        state = STATE_ACTIVE if active else STATE_INACTIVE
        self._store.append_rows(self._table, [[state, _utc_now_iso(), actor]])
        logger.info("survey_status_changed", state=state, actor=actor)
        return state


class StaticAvailability:
    """Fixed availability; handy for one-off operator runs and tests."""

    def __init__(self, active: bool) -> None:
        self.active = bool(active)

    def is_active(self) -> bool:
        return self.active
