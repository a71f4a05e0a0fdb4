"""flask_app.py

HTTP surface for the survey staging pipeline.

The survey front-end posts completed sessions to ``/api/<version>/submissions``;
operators open and close the survey, inspect staging and trigger consolidation
through the remaining ``/api/<version>/*`` routes.

Env
---
- STORE_BACKEND / STORE_DUCKDB_PATH / DB_URL select the table store
- API_BEARER_TOKEN (optional) protects the operator routes

Run
---
FLASK_APP=apps.flask_api.flask_app flask run --host=0.0.0.0 --port=5000
"""

from __future__ import annotations

import hmac
import time
from typing import Any, Optional

from flask import Flask, Response, abort, request

from apps.flask_api.blueprints import consolidation_bp, health_bp, submissions_bp
from apps.flask_api.utils import _err
from apps.flask_api.utils.responses import set_debug_mode
from infra.config import get_settings
from infra.logging_config import StructuredLogger, clear_request_context, set_request_context, setup_logging

setup_logging()
logger = StructuredLogger(__name__)

_SETTINGS = get_settings()
_API_PREFIX = f"/api/{_SETTINGS.api.version}"
_API_BEARER_TOKEN = _SETTINGS.api.bearer_token.strip()
set_debug_mode(_SETTINGS.api.debug_errors)

# Routes reachable without a bearer token even when one is configured.
_PUBLIC_ROUTES = {
    ("POST", f"{_API_PREFIX}/submissions"),
    ("GET", f"{_API_PREFIX}/status"),
}

app = Flask(__name__)


@app.before_request
def _start_timer() -> None:
    request.environ["_survey_t0"] = time.monotonic()
    set_request_context(request_id=request.headers.get("X-Request-Id"))


def _check_bearer_token() -> None:
    """Abort the request if the bearer token is missing/invalid."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        abort(401)
    token = auth[len("Bearer ") :].strip()
    if not hmac.compare_digest(token, _API_BEARER_TOKEN):
        abort(403)


@app.before_request
def _enforce_api_auth() -> None:
    """Require ``Authorization: Bearer`` on operator routes when a token is set."""
    if not _API_BEARER_TOKEN:
        return
    path = request.path or ""
    if not path.startswith("/api/"):
        return
    if (request.method, path) in _PUBLIC_ROUTES:
        return
    _check_bearer_token()


@app.after_request
def _log_request(resp: Response) -> Response:
    t0 = float(request.environ.get("_survey_t0") or 0.0)
    ms: Optional[int] = int(max(0.0, (time.monotonic() - t0) * 1000.0)) if t0 else None
    logger.info(
        "http_request",
        method=request.method,
        path=request.path,
        status=int(resp.status_code or 0),
        ms=ms,
        ip=request.headers.get("X-Forwarded-For", request.remote_addr),
    )
    clear_request_context()

    if (request.path or "").startswith("/api/"):
        resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    return resp


@app.errorhandler(401)
def _err_401(_: Exception) -> Any:
    return _err("unauthorized", "missing bearer token", status=401)


@app.errorhandler(403)
def _err_403(_: Exception) -> Any:
    return _err("forbidden", "invalid bearer token", status=403)


@app.errorhandler(404)
def _err_404(_: Exception) -> Any:
    return _err("not_found", "no such route", status=404)


@app.errorhandler(405)
def _err_405(_: Exception) -> Any:
    return _err("method_not_allowed", "method not allowed", status=405)


@app.errorhandler(500)
def _err_500(exc: Exception) -> Any:
    logger.error("unhandled_exception", path=request.path, detail=str(exc))
    return _err("internal_error", "internal error", status=500)


app.register_blueprint(health_bp)
app.register_blueprint(health_bp, url_prefix=_API_PREFIX, name="api_health")
app.register_blueprint(submissions_bp, url_prefix=_API_PREFIX)
app.register_blueprint(consolidation_bp, url_prefix=_API_PREFIX)
