"""Payload parameter parsing helpers for Flask API."""

from typing import Any

from flask import request

# Form field names posted by the survey front-end.
RESPONSES_FIELD = "responses"
SUBJECT_FIELD = "subjectDemographicData"
PEERS_FIELD = "peerDemographicData"


def _payload_dict() -> dict[str, Any]:
    """Return the JSON body as a dict.

    Raises:
        ValueError: If the body is missing or not a JSON object
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def _require_fields(payload: dict[str, Any], *names: str) -> list[Any]:
    """Return the values of required payload fields in order.

    Raises:
        ValueError: If any field is absent
    """
    missing = [name for name in names if name not in payload]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    return [payload[name] for name in names]


def _parse_bool(value: Any, *, field_name: str) -> bool:
    """Parse a JSON boolean (or a common textual spelling of one).

    Raises:
        ValueError: If the value is not recognizable as a boolean
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on", "active"}:
        return True
    if text in {"0", "false", "no", "off", "inactive"}:
        return False
    raise ValueError(f"Invalid {field_name}: expected boolean, got {value!r}")


def _actor() -> str:
    """Best-effort identification of who issued an operator request."""
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and str(payload.get("actor") or "").strip():
        return str(payload["actor"]).strip()[:200]
    return request.headers.get("X-Forwarded-For", request.remote_addr) or "api"
