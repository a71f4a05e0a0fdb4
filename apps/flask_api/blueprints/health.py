"""Health and metadata endpoints Blueprint."""

from typing import Any

from flask import Blueprint

from apps.flask_api.runtime_state import get_runtime
from apps.flask_api.utils import _internal_error, _ok
from contracts.schema import STAGING_TABLES
from version import ENGINE_NAME, ENGINE_VERSION, SCHEMA_VERSION

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health() -> Any:
    """Liveness check; does not touch the store."""
    return _ok()


@health_bp.route("/health/store", methods=["GET"])
def health_store() -> Any:
    """Store check: every staging queue must be readable."""
    try:
        runtime = get_runtime()
        for table in STAGING_TABLES:
            runtime.store.data_row_count(table)
    except Exception as exc:
        return _internal_error(exc, code="store_unhealthy", message="store health check failed")
    return _ok({"store": runtime.backend})


@health_bp.route("/version", methods=["GET"])
def version() -> Any:
    """Engine and table-layout version metadata."""
    return _ok(
        {
            "engine": ENGINE_NAME,
            "engine_version": ENGINE_VERSION,
            "schema_version": SCHEMA_VERSION,
        }
    )
