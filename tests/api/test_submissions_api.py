"""Tests for the submissions endpoint."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

import apps.flask_api.flask_app as flask_app
from apps.backend.runtime import runtime_from_store
from apps.flask_api.runtime_state import set_runtime
from contracts.schema import PEER_QUEUE, RESPONSES_QUEUE, SUBJECT_QUEUE
from factories import FailingStore, make_store, make_submission

_URL = "/api/v1/submissions"


@pytest.fixture
def runtime(monkeypatch: Any) -> Iterator[Any]:
    """Install an in-memory runtime with the survey open and auth disabled."""
    monkeypatch.setattr(flask_app, "_API_BEARER_TOKEN", "")
    rt = runtime_from_store(make_store())
    rt.availability.set_active(True, actor="test")
    set_runtime(rt)
    yield rt
    set_runtime(None)


def test_submission_is_staged_and_key_returned(runtime: Any) -> None:
    """A well-formed body is staged and answered with 201."""
    client = flask_app.app.test_client()

    resp = client.post(_URL, json=make_submission(peers=2))

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["ok"] is True
    key = body["submission_key"]
    assert runtime.store.read_rows(SUBJECT_QUEUE) == [[key, "F", "22"]]
    assert runtime.store.data_row_count(RESPONSES_QUEUE) == 2
    assert runtime.store.data_row_count(PEER_QUEUE) == 2


def test_closed_survey_rejects_submissions(runtime: Any) -> None:
    """Submissions are refused with 409 while the survey is inactive."""
    runtime.availability.set_active(False, actor="test")
    client = flask_app.app.test_client()

    resp = client.post(_URL, json=make_submission())

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "survey_closed"
    assert runtime.store.data_row_count(SUBJECT_QUEUE) == 0


@pytest.mark.parametrize(
    "body",
    [
        {"responses": [], "subjectDemographicData": ["F"]},
        {"responses": "x", "subjectDemographicData": ["F"], "peerDemographicData": []},
        {"responses": [[{"a": 1}]], "subjectDemographicData": ["F"], "peerDemographicData": []},
    ],
)
def test_malformed_bodies_are_bad_requests(runtime: Any, body: dict[str, Any]) -> None:
    """Missing fields and non-scalar cells yield 400 and stage nothing."""
    client = flask_app.app.test_client()

    resp = client.post(_URL, json=body)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "bad_request"
    assert runtime.store.data_row_count(SUBJECT_QUEUE) == 0


def test_non_json_body_is_a_bad_request(runtime: Any) -> None:
    """A body that is not a JSON object is rejected."""
    client = flask_app.app.test_client()

    resp = client.post(_URL, data="nope", content_type="text/plain")

    assert resp.status_code == 400


def test_store_failure_is_an_internal_error(runtime: Any) -> None:
    """Store failures during staging map to 500 staging_failed."""
    failing = FailingStore(runtime.store, fail_append=[SUBJECT_QUEUE])
    rt = runtime_from_store(failing)
    set_runtime(rt)
    client = flask_app.app.test_client()

    resp = client.post(_URL, json=make_submission())

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["error"] == "staging_failed"
    assert "detail" not in body


def test_submissions_stay_public_when_a_token_is_configured(runtime: Any, monkeypatch: Any) -> None:
    """The form posts without credentials even when operator auth is on."""
    monkeypatch.setattr(flask_app, "_API_BEARER_TOKEN", "s3cret")
    client = flask_app.app.test_client()

    resp = client.post(_URL, json=make_submission())

    assert resp.status_code == 201


def test_health_is_public(runtime: Any) -> None:
    """/health answers without touching the store."""
    client = flask_app.app.test_client()

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}
