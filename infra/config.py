"""Settings for the survey pipeline, validated with pydantic.

Values come from the process environment layered over an optional ``.env``
file in the working directory. Every field accepts a nested key
(``STORE__BACKEND``) and one or more flat aliases (``STORE_BACKEND``); the
first non-empty key wins and unset fields fall back to model defaults.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from threading import Lock

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_STORE_BACKENDS = {"memory", "duckdb", "postgres"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _parse_flag(value: object, default: bool) -> bool:
    """Interpret common on/off spellings; anything else yields *default*."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    return default


class DatabaseConfig(BaseModel):
    """Postgres connection settings (used by the ``postgres`` store backend)."""

    model_config = ConfigDict(frozen=True)

    url: str | None = Field(default=None, description="Postgres DSN for the shared store")
    pool_maxconn: int = Field(default=10, ge=1, le=100)
    connect_timeout: int = Field(default=5, ge=1, le=60)


class StoreConfig(BaseModel):
    """Which tabular store backs the staging and output tables."""

    model_config = ConfigDict(frozen=True)

    backend: str = Field(default="duckdb")
    duckdb_path: str = Field(default="data/survey.duckdb")

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: object) -> str:
        text = str(value or "").strip().lower()
        if not text:
            return "duckdb"
        if text not in _STORE_BACKENDS:
            raise ValueError(f"store.backend must be one of {sorted(_STORE_BACKENDS)}, got {text!r}")
        return text


class APIConfig(BaseModel):
    """HTTP surface: bind address, route version and operator auth."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000, ge=1, le=65535)
    version: str = Field(default="v1")
    debug_errors: bool = Field(default=False)
    bearer_token: str = Field(default="")

    @field_validator("version")
    @classmethod
    def _coerce_version(cls, value: str) -> str:
        text = str(value or "").strip().lower()
        return text if re.fullmatch(r"v\d+", text) else "v1"

    @field_validator("debug_errors", mode="before")
    @classmethod
    def _coerce_debug_errors(cls, value: object) -> bool:
        return _parse_flag(value, False)


class LoggingSettings(BaseModel):
    """Root logger level and output format."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)
    override_root_handlers: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def _coerce_level(cls, value: str) -> str:
        text = str(value or "").strip().upper()
        return text if text in _LOG_LEVELS else "INFO"

    @field_validator("json_logs", "override_root_handlers", mode="before")
    @classmethod
    def _coerce_flags(cls, value: object) -> bool:
        return _parse_flag(value, False)


class DbMetricsConfig(BaseModel):
    """Timing of Postgres statements issued by the store backend."""

    model_config = ConfigDict(frozen=True)

    metrics_enabled: bool = Field(default=True)
    slow_query_threshold_ms: float = Field(default=1000.0, ge=0.0)

    @field_validator("metrics_enabled", mode="before")
    @classmethod
    def _coerce_enabled(cls, value: object) -> bool:
        return _parse_flag(value, True)

    @field_validator("slow_query_threshold_ms", mode="before")
    @classmethod
    def _coerce_threshold(cls, value: object) -> float:
        try:
            parsed = float(str(value).strip())
        except (TypeError, ValueError):
            return 1000.0
        return max(0.0, parsed)


class ReconcileConfig(BaseModel):
    """Consolidation lease settings."""

    model_config = ConfigDict(frozen=True)

    lock_name: str = Field(default="survey-reconcile")
    lock_ttl_seconds: int = Field(default=900, ge=1)

    @field_validator("lock_name", mode="before")
    @classmethod
    def _coerce_lock_name(cls, value: object) -> str:
        return str(value or "").strip() or "survey-reconcile"


# section -> field -> env keys, in lookup order
_ENV_KEYS: dict[str, dict[str, tuple[str, ...]]] = {
    "db": {
        "url": ("DB__URL", "DB_URL"),
        "pool_maxconn": ("DB__POOL_MAXCONN", "DB_POOL_MAXCONN"),
        "connect_timeout": ("DB__CONNECT_TIMEOUT", "DB_CONNECT_TIMEOUT"),
    },
    "store": {
        "backend": ("STORE__BACKEND", "STORE_BACKEND"),
        "duckdb_path": ("STORE__DUCKDB_PATH", "STORE_DUCKDB_PATH"),
    },
    "api": {
        "host": ("API__HOST", "API_HOST", "HOST"),
        "port": ("API__PORT", "API_PORT", "PORT"),
        "version": ("API__VERSION", "API_VERSION"),
        "debug_errors": ("API__DEBUG_ERRORS", "API_DEBUG_ERRORS"),
        "bearer_token": ("API__BEARER_TOKEN", "API_BEARER_TOKEN"),
    },
    "logging": {
        "level": ("LOGGING__LEVEL", "SURVEY_LOG_LEVEL"),
        "json_logs": ("LOGGING__JSON_LOGS", "SURVEY_LOG_JSON"),
        "override_root_handlers": ("LOGGING__OVERRIDE_ROOT_HANDLERS", "SURVEY_LOG_OVERRIDE"),
    },
    "db_metrics": {
        "metrics_enabled": ("DB_METRICS__ENABLED", "DB_QUERY_METRICS_ENABLED"),
        "slow_query_threshold_ms": ("DB_METRICS__SLOW_QUERY_THRESHOLD_MS", "DB_SLOW_QUERY_THRESHOLD_MS"),
    },
    "reconcile": {
        "lock_name": ("RECONCILE__LOCK_NAME", "RECONCILE_LOCK_NAME"),
        "lock_ttl_seconds": ("RECONCILE__LOCK_TTL_SECONDS", "RECONCILE_LOCK_TTL_SECONDS"),
    },
}


class Settings(BaseModel):
    """All settings sections."""

    model_config = ConfigDict(frozen=True)

    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    db_metrics: DbMetricsConfig = Field(default_factory=DbMetricsConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)

    @classmethod
    def from_env(
        cls,
        *,
        env: Mapping[str, str] | None = None,
        env_file: str = ".env",
    ) -> Settings:
        """Validate settings from *env* (default: ``os.environ``) over *env_file*.

        Raises:
            ValidationError: a value violates its field constraints.
        """
        layered = dict(_read_env_file(Path(env_file)))
        layered.update({str(k): str(v) for k, v in (os.environ if env is None else env).items()})
        return cls.model_validate(
            {section: _lookup_section(layered, keys) for section, keys in _ENV_KEYS.items()}
        )


def _read_env_file(path: Path) -> dict[str, str]:
    """``KEY=value`` lines; ``#`` comments and surrounding quotes are stripped."""
    if not path.is_file():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if len(value) >= 2 and value[0] in "'\"" and value[-1] == value[0]:
            value = value[1:-1]
        if key:
            values[key] = value
    return values


def _lookup_section(env: Mapping[str, str], keys: Mapping[str, tuple[str, ...]]) -> dict[str, str]:
    """Resolve one section; fields with no non-empty key are omitted."""
    section: dict[str, str] = {}
    for field_name, candidates in keys.items():
        for key in candidates:
            value = env.get(key, "").strip()
            if value:
                section[field_name] = value
                break
    return section


_SETTINGS_LOCK = Lock()
_SETTINGS_CACHE: Settings | None = None


def get_settings(*, reload: bool = False) -> Settings:
    """Process-wide settings; built on first use or when *reload* is set."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        if reload or _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = Settings.from_env()
        return _SETTINGS_CACHE


def clear_settings_cache() -> None:
    """Forget cached settings so the next ``get_settings`` re-reads the env."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None


__all__ = [
    "APIConfig",
    "DatabaseConfig",
    "DbMetricsConfig",
    "LoggingSettings",
    "ReconcileConfig",
    "Settings",
    "StoreConfig",
    "ValidationError",
    "clear_settings_cache",
    "get_settings",
]
