from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import pytest
from pydantic import ValidationError

from resilient_ops.retry import BackoffPolicy
from resilient_ops.settings import (
    DatabaseSettings,
    FailureHandlingSettings,
    ResilienceSettings,
)
from tests.resilient_ops.support.fakes import succeeding_action

_ENV_NAMES = (
    "DBNAME",
    "DB_NAME",
    "DB_HOST",
    "DB_PORT",
    "DB_USER",
    "DB_PASSWORD",
    "PGPASSWORD",
    "RESILIENCE_FAILURE_THRESHOLD",
    "RESILIENCE_TIMEOUT_SECONDS",
    "RESILIENCE_RESET_TIMEOUT_SECONDS",
    "RESILIENCE_RETRY_MAX_ATTEMPTS",
    "RESILIENCE_LOG_LEVEL",
    "CLEAN",
    "GENERATE_FAILED_FILE",
    "ONLY_EXECUTION",
    "SEND_ALERT_EMAIL",
    "FAILED_EXECUTION_FILE",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_resilience_settings_defaults() -> None:
    settings = ResilienceSettings()

    assert settings.failure_threshold == 5
    assert settings.timeout_seconds == 30.0
    assert settings.reset_timeout_seconds == 60.0
    assert settings.retry_max_attempts == 3
    assert settings.log_level == "INFO"


def test_resilience_settings_reads_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("RESILIENCE_FAILURE_THRESHOLD", "2")
    monkeypatch.setenv("RESILIENCE_RESET_TIMEOUT_SECONDS", "10")
    monkeypatch.setenv("RESILIENCE_LOG_LEVEL", " debug ")

    settings = ResilienceSettings()

    assert settings.failure_threshold == 2
    assert settings.reset_timeout_seconds == 10.0
    assert settings.log_level == "DEBUG"


def test_resilience_settings_builds_work_unit_and_policy() -> None:
    settings = ResilienceSettings(
        failure_threshold=2,
        timeout_seconds=5.0,
        reset_timeout_seconds=10.0,
        retry_max_attempts=4,
        retry_initial_delay_seconds=0.5,
        retry_max_delay_seconds=8.0,
    )
    action = succeeding_action()

    work = settings.work_unit(action)

    assert work.action is action
    assert work.timeout == 5.0
    assert work.failure_threshold == 2
    assert work.reset_timeout == 10.0
    assert settings.backoff_policy() == BackoffPolicy(
        max_attempts=4, initial_delay=0.5, max_delay=8.0
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {"failure_threshold": 0},
        {"timeout_seconds": 0},
        {"reset_timeout_seconds": -1},
        {"retry_max_attempts": 0},
        {"retry_initial_delay_seconds": 5, "retry_max_delay_seconds": 1},
        {"log_level": "TRACE"},
    ],
)
def test_resilience_settings_rejects_invalid_values(
    overrides: dict[str, object],
) -> None:
    with pytest.raises(ValidationError):
        ResilienceSettings(**cast(Any, overrides))


def test_database_settings_reads_dbname_and_prefixed_values(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("DBNAME", "gis")
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_USER", "loader")

    settings = DatabaseSettings()

    assert settings.dbname == "gis"
    assert settings.host == "db.internal"
    assert settings.port == 6543
    assert settings.user == "loader"
    assert settings.uses_peer_auth is False


def test_database_settings_treats_blank_values_as_unset(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("DBNAME", "gis")
    monkeypatch.setenv("DB_HOST", "  ")

    settings = DatabaseSettings()

    assert settings.host is None
    assert settings.uses_peer_auth is True


def test_psql_command_uses_peer_authentication_without_connection_values() -> None:
    settings = DatabaseSettings(dbname="gis")

    assert settings.psql_command("/srv/load.sql") == [
        "psql",
        "-v",
        "ON_ERROR_STOP=1",
        "-d",
        "gis",
        "-f",
        "/srv/load.sql",
    ]


def test_psql_command_fills_defaults_for_explicit_connection() -> None:
    settings = DatabaseSettings(dbname="gis", host="db.internal", user="loader")

    assert settings.psql_command("/srv/load.sql") == [
        "psql",
        "-v",
        "ON_ERROR_STOP=1",
        "-h",
        "db.internal",
        "-p",
        "5432",
        "-U",
        "loader",
        "-d",
        "gis",
        "-f",
        "/srv/load.sql",
    ]


def test_psql_command_requires_dbname() -> None:
    with pytest.raises(ValueError, match="dbname"):
        DatabaseSettings().psql_command("/srv/load.sql")


def test_psql_env_carries_password_only_when_set() -> None:
    with_password = DatabaseSettings(dbname="gis", password="secret")
    without_password = DatabaseSettings(dbname="gis")

    assert with_password.psql_env()["PGPASSWORD"] == "secret"
    assert "PGPASSWORD" not in without_password.psql_env()


def test_database_settings_rejects_out_of_range_port() -> None:
    with pytest.raises(ValidationError):
        DatabaseSettings(dbname="gis", port=70000)


def test_failure_handling_defaults() -> None:
    settings = FailureHandlingSettings()

    assert settings.clean is True
    assert settings.generate_failed_file is True
    assert settings.only_execution is False
    assert settings.send_alert_email is True
    assert settings.failed_execution_file is None


def test_failure_handling_reads_unprefixed_switches(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("CLEAN", "false")
    monkeypatch.setenv("ONLY_EXECUTION", "yes")
    monkeypatch.setenv("SEND_ALERT_EMAIL", "false")
    monkeypatch.setenv("FAILED_EXECUTION_FILE", str(tmp_path / "failed"))

    settings = FailureHandlingSettings()

    assert settings.clean is False
    assert settings.only_execution is True
    assert settings.send_alert_email is False
    assert settings.failed_execution_file == tmp_path / "failed"


def test_failure_handling_treats_blank_file_as_unset(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("FAILED_EXECUTION_FILE", "  ")
    monkeypatch.setenv("ONLY_EXECUTION", "no")

    settings = FailureHandlingSettings()

    assert settings.failed_execution_file is None
    assert settings.only_execution is False
