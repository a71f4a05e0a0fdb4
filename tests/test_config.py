"""Unit tests for centralized configuration parsing and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from infra.config import Settings, ValidationError, clear_settings_cache, get_settings


def test_settings_defaults() -> None:
    """Without env, the DuckDB store and v1 API are used."""
    settings = Settings.from_env(env={}, env_file=".missing.env")

    assert settings.store.backend == "duckdb"
    assert settings.store.duckdb_path == "data/survey.duckdb"
    assert settings.api.version == "v1"
    assert settings.api.bearer_token == ""
    assert settings.reconcile.lock_name == "survey-reconcile"
    assert settings.reconcile.lock_ttl_seconds == 900
    assert settings.logging.level == "INFO"


def test_settings_reads_flat_env_keys() -> None:
    """Flat env keys should map to nested settings models."""
    env = {
        "DB_URL": "postgres://flat/db",
        "DB_POOL_MAXCONN": "15",
        "STORE_BACKEND": "Postgres",
        "API_VERSION": "v2",
        "API_DEBUG_ERRORS": "1",
        "PORT": "7001",
        "SURVEY_LOG_LEVEL": "debug",
        "SURVEY_LOG_JSON": "true",
        "RECONCILE_LOCK_TTL_SECONDS": "60",
    }
    settings = Settings.from_env(env=env, env_file=".missing.env")

    assert settings.db.url == "postgres://flat/db"
    assert settings.db.pool_maxconn == 15
    assert settings.store.backend == "postgres"
    assert settings.api.version == "v2"
    assert settings.api.debug_errors is True
    assert settings.api.port == 7001
    assert settings.logging.level == "DEBUG"
    assert settings.logging.json_logs is True
    assert settings.reconcile.lock_ttl_seconds == 60


def test_settings_reads_nested_env_keys() -> None:
    """Nested env keys should be supported with `__` delimiter."""
    env = {
        "STORE__BACKEND": "memory",
        "STORE__DUCKDB_PATH": "/tmp/other.duckdb",
        "API__HOST": "127.0.0.1",
        "API__BEARER_TOKEN": "s3cret",
        "RECONCILE__LOCK_NAME": "nightly",
    }
    settings = Settings.from_env(env=env, env_file=".missing.env")

    assert settings.store.backend == "memory"
    assert settings.store.duckdb_path == "/tmp/other.duckdb"
    assert settings.api.host == "127.0.0.1"
    assert settings.api.bearer_token == "s3cret"
    assert settings.reconcile.lock_name == "nightly"


def test_unknown_store_backend_is_rejected() -> None:
    """Only memory, duckdb and postgres are valid backends."""
    with pytest.raises(ValidationError):
        Settings.from_env(env={"STORE_BACKEND": "sheets"}, env_file=".missing.env")


def test_settings_invalid_pool_size_raises_validation_error() -> None:
    """Invalid constrained values should fail schema validation."""
    with pytest.raises(ValidationError):
        Settings.from_env(env={"DB_POOL_MAXCONN": "0"}, env_file=".missing.env")


def test_settings_invalid_api_version_falls_back_to_v1() -> None:
    """Invalid API version values should normalize to v1 for compatibility."""
    settings = Settings.from_env(env={"API_VERSION": "latest"}, env_file=".missing.env")
    assert settings.api.version == "v1"


def test_dotenv_values_are_overridden_by_process_env(tmp_path: Path) -> None:
    """`.env` provides defaults; runtime env wins."""
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local dev\nSTORE_BACKEND=memory\nAPI_PORT='6000'\nDB_URL=postgres://dotenv/db\n",
        encoding="utf-8",
    )

    settings = Settings.from_env(env={"DB_URL": "postgres://runtime/db"}, env_file=str(env_file))

    assert settings.store.backend == "memory"
    assert settings.api.port == 6000
    assert settings.db.url == "postgres://runtime/db"


def test_settings_are_frozen() -> None:
    """Settings instances are immutable."""
    settings = Settings.from_env(env={}, env_file=".missing.env")
    with pytest.raises(ValidationError):
        settings.store.backend = "memory"  # type: ignore[misc]


def test_get_settings_reload_rebuilds_cache(monkeypatch: Any) -> None:
    """Reload should rebuild cached settings from current process env."""
    clear_settings_cache()
    monkeypatch.setenv("STORE_BACKEND", "memory")
    first = get_settings(reload=True)

    monkeypatch.setenv("STORE_BACKEND", "duckdb")
    second = get_settings(reload=True)
    clear_settings_cache()

    assert first.store.backend == "memory"
    assert second.store.backend == "duckdb"
