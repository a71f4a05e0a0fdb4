"""JSON envelopes shared by every endpoint.

Success bodies are ``{"ok": true, ...data}``; failures are
``{"ok": false, "error": <code>, "message": <text>, ...extra}``.
"""

from typing import Any, Dict, Optional

from flask import jsonify

# Whether 500 bodies include the exception text; set once by the app module.
_API_DEBUG_ERRORS: bool = False


def set_debug_mode(enabled: bool) -> None:
    global _API_DEBUG_ERRORS
    _API_DEBUG_ERRORS = bool(enabled)


def _ok(data: Optional[Dict[str, Any]] = None, *, status: int = 200) -> Any:
    """Success envelope with *data* merged in."""
    body: Dict[str, Any] = {"ok": True, **(data or {})}
    return jsonify(body), status


def _err(
    code: str,
    message: str,
    *,
    status: int,
    extra: Optional[Dict[str, Any]] = None,
) -> Any:
    """Failure envelope.

    Args:
        code: Machine-readable code such as ``bad_request`` or ``survey_closed``
        message: Text shown to operators
        status: HTTP status
        extra: Additional keys merged into the body
    """
    body: Dict[str, Any] = {"ok": False, "error": code, "message": message, **(extra or {})}
    return jsonify(body), status


def _internal_error(exc: BaseException, *, code: str = "internal_error", message: str = "internal error") -> Any:
    """500 envelope; the exception text is only exposed in debug mode."""
    extra = {"detail": str(exc)} if _API_DEBUG_ERRORS else None
    return _err(code, message, status=500, extra=extra)
