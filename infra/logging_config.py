"""Logging setup shared by the CLI and the Flask app.

Pipeline modules log named events through ``StructuredLogger``; the keyword
fields of an event ride on the ``LogRecord`` so that the JSON formatter can
emit them as top-level keys and the text formatter can append them as
``k=v`` pairs. Staging keys, consolidation summaries and count-mismatch
warnings therefore stay machine-parseable in either format.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from infra.config import get_settings

# Fields bound for the current HTTP request or CLI command
request_ctx: ContextVar[dict[str, Any] | None] = ContextVar("request_ctx", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def set_request_context(**kwargs: Any) -> None:
    """Bind fields that every following log entry in this context will carry."""
    bound = dict(request_ctx.get() or {})
    bound.update(kwargs)
    request_ctx.set(bound)


def clear_request_context() -> None:
    request_ctx.set({})


def get_request_context() -> dict[str, Any]:
    """Return a copy of the bound fields."""
    return dict(request_ctx.get() or {})


def _utc_timestamp() -> str:
    # 2026-03-02T09:15:04.512Z
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _event_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Key precedence: record basics, then event fields, then static
    ``extra_fields``, then request context.
    """

    def __init__(self, *, extra_fields: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self._static = dict(extra_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for source in (_event_fields(record), self._static, get_request_context()):
            for key, value in source.items():
                doc.setdefault(key, value)
        if record.exc_info:
            doc["exception"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """``<utc time>Z | LEVEL | logger | event | k=v ...``"""

    converter = time.gmtime

    def __init__(self) -> None:
        super().__init__("%(asctime)sZ | %(levelname)s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _event_fields(record)
        fields.pop("event", None)
        if fields:
            line += " | " + " ".join(f"{k}={fields[k]}" for k in sorted(fields))
        return line


class StructuredLogger:
    """
    Event-name logger.

        logger = StructuredLogger(__name__)
        logger.info("reconcile_completed", subjects=3, responses=9)

    The event name is the log message; keyword fields travel as ``extra`` so
    formatters and pytest's ``caplog`` see them as record attributes.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._logger.name

    def _emit(self, level: int, event: str, fields: dict[str, Any], *, exc_info: bool = False) -> None:
        self._logger.log(level, event, extra={"event": event, **fields}, exc_info=exc_info)

    def debug(self, event: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, fields)

    def exception(self, event: str, **fields: Any) -> None:
        """Error-level event with the exception being handled attached."""
        self._emit(logging.ERROR, event, fields, exc_info=True)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    json_logs: bool = False
    override_root_handlers: bool = False
    extra_fields: Mapping[str, Any] | None = None


def _resolve_config(
    level: str | None,
    json_logs: bool | None,
    override_root_handlers: bool | None,
    extra_fields: Mapping[str, Any] | None,
) -> LoggingConfig:
    configured = get_settings(reload=True).logging
    return LoggingConfig(
        level=(level or configured.level).upper(),
        json_logs=configured.json_logs if json_logs is None else bool(json_logs),
        override_root_handlers=(
            configured.override_root_handlers if override_root_handlers is None else bool(override_root_handlers)
        ),
        extra_fields=extra_fields,
    )


def _make_handler(cfg: LoggingConfig) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(extra_fields=cfg.extra_fields) if cfg.json_logs else TextFormatter())
    return handler


def setup_logging(
    *,
    level: str | None = None,
    json_logs: bool | None = None,
    override_root_handlers: bool | None = None,
    extra_fields: Mapping[str, Any] | None = None,
) -> None:
    """
    Configure the root logger for an entrypoint.

    Arguments override settings, which come from:
      - SURVEY_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default INFO)
      - SURVEY_LOG_JSON: 1/0 (default 0)
      - SURVEY_LOG_OVERRIDE: 1/0 (default 0); when 0 a handler is only
        installed if the root logger has none yet
    """
    cfg = _resolve_config(level, json_logs, override_root_handlers, extra_fields)

    root = logging.getLogger()
    root.setLevel(getattr(logging, cfg.level, logging.INFO))
    if cfg.override_root_handlers:
        for existing in list(root.handlers):
            root.removeHandler(existing)
    if cfg.override_root_handlers or not root.handlers:
        root.addHandler(_make_handler(cfg))

    for noisy in ("werkzeug", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
