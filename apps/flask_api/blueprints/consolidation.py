"""Consolidation Blueprint.

Operator endpoints: survey availability, staging visibility, and the
consolidation run itself.
"""

from typing import Any

from flask import Blueprint

from apps.flask_api.runtime_state import get_runtime
from apps.flask_api.utils import (
    _actor,
    _err,
    _internal_error,
    _ok,
    _parse_bool,
    _payload_dict,
    _require_fields,
)
from contracts.errors import ClearError, CommitError
from contracts.schema import STAGING_TABLES
from pipeline.consolidate import reconcile

consolidation_bp = Blueprint("consolidation", __name__)


@consolidation_bp.route("/status", methods=["GET"])
def api_status() -> Any:
    """Return whether the survey is accepting submissions."""
    return _ok({"active": get_runtime().availability.is_active()})


@consolidation_bp.route("/status", methods=["PUT"])
def api_set_status() -> Any:
    """Open or close the survey.

    Body:
        active (required): boolean
        actor (optional): recorded in the status log
    """
    try:
        payload = _payload_dict()
        (raw_active,) = _require_fields(payload, "active")
        active = _parse_bool(raw_active, field_name="active")
    except ValueError as exc:
        return _err("bad_request", str(exc), status=400)

    state = get_runtime().availability.set_active(active, actor=_actor())
    return _ok({"active": active, "state": state})


@consolidation_bp.route("/staging", methods=["GET"])
def api_staging_counts() -> Any:
    """Staged data-row counts per queue."""
    store = get_runtime().store
    return _ok({"staging": {table: store.data_row_count(table) for table in STAGING_TABLES}})


@consolidation_bp.route("/reconcile", methods=["POST"])
def api_reconcile() -> Any:
    """Run one consolidation.

    Returns the run summary; ``result.status`` is ``skipped_active`` while the
    survey is open and ``skipped_locked`` when another run holds the lease.
    """
    runtime = get_runtime()
    try:
        result = reconcile(runtime.store, runtime.availability, runtime.lease)
    except CommitError as exc:
        return _internal_error(exc, code="commit_failed", message="output write failed; staging kept")
    except ClearError as exc:
        return _internal_error(exc, code="clear_failed", message="outputs written; staging clear failed")
    except Exception as exc:
        return _internal_error(exc)
    return _ok({"result": result.as_dict()})
