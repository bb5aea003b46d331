"""Circuit-protected downloads, API calls, SQL scripts and file operations."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import structlog

from resilient_ops.actions import blocking_action, command_action
from resilient_ops.circuit_breaker.registry import CircuitBreakerRegistry, WorkUnit
from resilient_ops.circuit_breaker.result import ExecutionResult
from resilient_ops.file_ops import (
    FileOperationKind,
    StrPath,
    check_file_operation,
    perform_file_operation,
)
from resilient_ops.invoker import EXIT_SUCCESS, WorkAction
from resilient_ops.logging import StructuredLogger, log_error
from resilient_ops.settings import DatabaseSettings
from resilient_ops.validation import InputValidator, validate_input_file

NETWORK_FAILURE_THRESHOLD = 3
NETWORK_TIMEOUT_SECONDS = 30.0
NETWORK_RESET_TIMEOUT_SECONDS = 120.0
DATABASE_FAILURE_THRESHOLD = 3
DATABASE_TIMEOUT_SECONDS = 60.0
DATABASE_RESET_TIMEOUT_SECONDS = 300.0
FILE_FAILURE_THRESHOLD = 3
FILE_TIMEOUT_SECONDS = 30.0
FILE_RESET_TIMEOUT_SECONDS = 120.0


class ResilientOperations:
    """Fixed-tuning entry points that delegate to a circuit breaker registry.

    Each method derives the operation name from the resource it touches, so
    one failing URL, script or source path never blocks another. Missing or
    invalid inputs are reported as ``INVALID`` results before the registry is
    consulted and never count as breaker failures.
    """

    def __init__(
        self,
        registry: CircuitBreakerRegistry,
        *,
        http_client: httpx.AsyncClient,
        database: DatabaseSettings | None = None,
        validator: InputValidator = validate_input_file,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create the facade.

        Args:
            registry: Registry holding the per-operation breaker records.
            http_client: Shared async HTTP client for downloads and API calls.
            database: Default connection values for ``execute_sql``.
            validator: Predicate consulted before running SQL scripts.
            logger: Structured logger. Defaults to a structlog logger.
        """
        self._registry = registry
        self._client = http_client
        self._database = database
        self._validator = validator
        self._logger: StructuredLogger = (
            structlog.stdlib.get_logger(__name__) if logger is None else logger
        )

    async def download(
        self,
        url: str,
        output_file: StrPath,
        *,
        timeout: float = NETWORK_TIMEOUT_SECONDS,
    ) -> ExecutionResult:
        """Fetch ``url`` into ``output_file`` under the ``download_`` circuit.

        The body goes to a hidden ``.part`` sibling that replaces
        ``output_file`` only once the transfer completes.
        """
        return await self._fetch("download_", url, output_file, timeout)

    async def api_call(
        self,
        url: str,
        output_file: StrPath,
        *,
        timeout: float = NETWORK_TIMEOUT_SECONDS,
    ) -> ExecutionResult:
        """Fetch an API response into ``output_file`` under ``api_call_``."""
        return await self._fetch("api_call_", url, output_file, timeout)

    async def execute_sql(
        self,
        script_path: StrPath,
        *,
        timeout: float = DATABASE_TIMEOUT_SECONDS,
        database: DatabaseSettings | None = None,
    ) -> ExecutionResult:
        """Run a SQL script through ``psql`` under the ``database_operation_`` circuit.

        The script must exist and be non-empty. ``database`` overrides the
        connection values given to the constructor.
        """
        name = f"database_operation_{script_path}" if script_path else ""
        if not script_path:
            return self._invalid(name, "SQL file is required")
        if not self._validator(script_path, "sql"):
            return self._invalid(name, f"SQL file failed validation: {script_path}")

        settings = self._database if database is None else database
        if settings is None or not settings.dbname:
            return self._invalid(name, "database name is not defined")

        action = command_action(
            settings.psql_command(script_path),
            env=settings.psql_env(),
        )
        work = WorkUnit(
            action=action,
            timeout=timeout,
            failure_threshold=DATABASE_FAILURE_THRESHOLD,
            reset_timeout=DATABASE_RESET_TIMEOUT_SECONDS,
        )
        return await self._registry.execute(name, work)

    async def file_operation(
        self,
        kind: str | FileOperationKind,
        source: StrPath,
        destination: StrPath | None = None,
    ) -> ExecutionResult:
        """Copy, move or delete ``source`` under the ``file_operation_`` circuit.

        ``copy`` and ``move`` need ``destination``; ``delete`` ignores it and
        succeeds when ``source`` is already gone.
        """
        parsed, problem = check_file_operation(kind, source, destination)
        if parsed is None:
            return self._invalid(f"file_operation_{kind}_{source}", problem or "")

        work = WorkUnit(
            action=blocking_action(perform_file_operation, parsed, source, destination),
            timeout=FILE_TIMEOUT_SECONDS,
            failure_threshold=FILE_FAILURE_THRESHOLD,
            reset_timeout=FILE_RESET_TIMEOUT_SECONDS,
        )
        return await self._registry.execute(f"file_operation_{parsed}_{source}", work)

    async def _fetch(
        self,
        prefix: str,
        url: str,
        output_file: StrPath,
        timeout: float,
    ) -> ExecutionResult:
        name = f"{prefix}{url}" if url else ""
        if not url or not output_file:
            return self._invalid(name, "URL and output file are required")
        work = WorkUnit(
            action=self._download_action(url, Path(output_file)),
            timeout=timeout,
            failure_threshold=NETWORK_FAILURE_THRESHOLD,
            reset_timeout=NETWORK_RESET_TIMEOUT_SECONDS,
        )
        return await self._registry.execute(name, work)

    def _download_action(self, url: str, output_file: Path) -> WorkAction:
        partial = output_file.with_name(f".{output_file.name}.part")

        async def _download() -> int:
            try:
                async with self._client.stream("GET", url) as response:
                    response.raise_for_status()
                    handle = await asyncio.to_thread(partial.open, "wb")
                    try:
                        async for chunk in response.aiter_bytes():
                            await asyncio.to_thread(handle.write, chunk)
                    finally:
                        handle.close()
                await asyncio.to_thread(partial.replace, output_file)
            finally:
                # Only a complete body ever reaches output_file.
                partial.unlink(missing_ok=True)
            return EXIT_SUCCESS

        return _download

    def _invalid(self, name: str, reason: str) -> ExecutionResult:
        log_error(self._logger, "operation.invalid_call", operation=name, reason=reason)
        return ExecutionResult.invalid(name, reason)
