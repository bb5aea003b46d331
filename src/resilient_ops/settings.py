from __future__ import annotations

import getpass
import os
from os import PathLike
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_ops.circuit_breaker.registry import WorkUnit
from resilient_ops.invoker import WorkAction
from resilient_ops.logging import get_log_level_value
from resilient_ops.retry import BackoffPolicy

DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_PORT = 5432


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class ResilienceSettings(BaseSettings):
    """Breaker and retry tuning shared by scripts embedding the core."""

    model_config = prefixed_settings_config("RESILIENCE_")

    failure_threshold: int = 5
    timeout_seconds: float = 30.0
    reset_timeout_seconds: float = 60.0
    retry_max_attempts: int = 3
    retry_initial_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 60.0
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    @model_validator(mode="after")
    def _validate_tuning(self) -> ResilienceSettings:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must be >= 0")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be >= 1")
        if self.retry_initial_delay_seconds < 0:
            raise ValueError("retry_initial_delay_seconds must be >= 0")
        if self.retry_max_delay_seconds < self.retry_initial_delay_seconds:
            raise ValueError(
                "retry_max_delay_seconds must be >= retry_initial_delay_seconds"
            )
        return self

    def work_unit(self, action: WorkAction) -> WorkUnit:
        """Wrap ``action`` in a work unit carrying the configured tuning."""
        return WorkUnit(
            action=action,
            timeout=self.timeout_seconds,
            failure_threshold=self.failure_threshold,
            reset_timeout=self.reset_timeout_seconds,
        )

    def backoff_policy(self) -> BackoffPolicy:
        """Build the retrier policy from the configured values."""
        return BackoffPolicy(
            max_attempts=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay_seconds,
            max_delay=self.retry_max_delay_seconds,
        )


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection values used to run SQL scripts through ``psql``.

    Without host, port, user or password the command relies on peer
    authentication over the local socket.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
        populate_by_name=True,
    )

    dbname: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DBNAME", "DB_NAME", "dbname"),
    )
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None

    @field_validator("dbname", "host", "user", "password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("port")
    @classmethod
    def _validate_port(cls, value: int | None) -> int | None:
        if value is not None and not 0 < value < 65536:
            raise ValueError("port must be between 1 and 65535")
        return value

    @property
    def uses_peer_auth(self) -> bool:
        """Return true when no explicit connection value was supplied."""
        return all(
            value is None for value in (self.host, self.port, self.user, self.password)
        )

    def psql_command(self, script_path: str | PathLike[str]) -> list[str]:
        """Build the ``psql`` argv that runs ``script_path`` against ``dbname``."""
        if not self.dbname:
            raise ValueError("dbname is required to run SQL scripts")
        command = ["psql", "-v", "ON_ERROR_STOP=1"]
        if not self.uses_peer_auth:
            command += [
                "-h",
                self.host or DEFAULT_DB_HOST,
                "-p",
                str(self.port or DEFAULT_DB_PORT),
                "-U",
                self.user or getpass.getuser(),
            ]
        command += ["-d", self.dbname, "-f", os.fspath(script_path)]
        return command

    def psql_env(self) -> dict[str, str]:
        """Return the child environment, carrying the password when set."""
        env = dict(os.environ)
        if self.password:
            env["PGPASSWORD"] = self.password
        return env


class FailureHandlingSettings(BaseSettings):
    """Switches read from the environment when a script gives up.

    ``ONLY_EXECUTION`` accepts ``yes``/``no`` as well as ``true``/``false``.
    """

    model_config = prefixed_settings_config("")

    clean: bool = True
    generate_failed_file: bool = True
    only_execution: bool = False
    send_alert_email: bool = True
    failed_execution_file: Path | None = None

    @field_validator("failed_execution_file", mode="before")
    @classmethod
    def _blank_path_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value
