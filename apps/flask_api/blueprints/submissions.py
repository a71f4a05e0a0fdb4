"""Submissions Blueprint.

Receives one completed survey session from the form and stages it. Staging
is only accepted while the survey is active.
"""

from typing import Any

from flask import Blueprint

from apps.flask_api.runtime_state import get_runtime
from apps.flask_api.utils import (
    PEERS_FIELD,
    RESPONSES_FIELD,
    SUBJECT_FIELD,
    _err,
    _internal_error,
    _ok,
    _payload_dict,
    _require_fields,
)
from contracts.errors import StagingInputError
from pipeline.staging_writer import stage

submissions_bp = Blueprint("submissions", __name__)


@submissions_bp.route("/submissions", methods=["POST"])
def api_submit() -> Any:
    """Stage one submission.

    Body:
        responses: list of rating rows
        subjectDemographicData: one row describing the reviewer
        peerDemographicData: list of peer rows (one per rating row)

    Returns:
        201 with the submission key; 400 for malformed payloads;
        409 when the survey is closed.
    """
    try:
        payload = _payload_dict()
        responses, subject_data, peer_data = _require_fields(
            payload, RESPONSES_FIELD, SUBJECT_FIELD, PEERS_FIELD
        )
    except ValueError as exc:
        return _err("bad_request", str(exc), status=400)

    runtime = get_runtime()
    try:
        if not runtime.availability.is_active():
            return _err("survey_closed", "the survey is not accepting submissions", status=409)
        key = stage(runtime.store, responses, subject_data, peer_data)
    except StagingInputError as exc:
        return _err("bad_request", str(exc), status=400)
    except Exception as exc:
        return _internal_error(exc, code="staging_failed", message="submission could not be staged")

    return _ok({"submission_key": key}, status=201)
