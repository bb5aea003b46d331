"""Terminal-failure handling: cleanup, failure marker and alert collaborator.

The core never notifies anyone itself. A calling script that gives up on an
operation either calls ``handle_error_with_cleanup`` or builds a
``TerminalFailure`` and hands it to a ``FailureReporter``.
``MarkerFileReporter`` writes the durable marker that blocks re-runs until an
operator removes it, and forwards to an optional notifier for alerting. Both
honour the switches in ``FailureHandlingSettings``.
"""

from __future__ import annotations

import asyncio
import inspect
import os
import socket
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import structlog

from resilient_ops.circuit_breaker.result import ExecutionResult
from resilient_ops.file_ops import StrPath
from resilient_ops.logging import StructuredLogger, log_debug, log_error, log_warning
from resilient_ops.retry import CleanupAction
from resilient_ops.settings import FailureHandlingSettings


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _default_logger(logger: StructuredLogger | None) -> StructuredLogger:
    return structlog.stdlib.get_logger(__name__) if logger is None else logger


@dataclass(frozen=True)
class TerminalFailure:
    """Everything the alert collaborator needs about one terminal failure."""

    script_name: str
    error_code: int
    error_message: str
    required_action: str
    marker_file: Path


class FailureReporter(Protocol):
    """Collaborator that records and announces terminal failures."""

    def report(self, failure: TerminalFailure) -> bool:
        """Persist and announce ``failure``; return whether a marker was written."""


def terminal_failure_from_result(
    result: ExecutionResult,
    *,
    script_name: str,
    required_action: str,
    marker_file: StrPath,
) -> TerminalFailure:
    """Describe a failed execution result as a terminal failure."""
    message = f"{result.name}: {result.outcome}"
    if result.detail:
        message = f"{message} ({result.detail})"
    return TerminalFailure(
        script_name=script_name,
        error_code=result.exit_code,
        error_message=message,
        required_action=required_action,
        marker_file=Path(marker_file),
    )


def has_failed_marker(marker_file: StrPath) -> bool:
    """Return true when a previous run left a failure marker behind."""
    return Path(marker_file).exists()


def _append_line(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(line)


async def handle_error_with_cleanup(
    error_code: int,
    message: str,
    cleanup: CleanupAction | None = None,
    *,
    settings: FailureHandlingSettings | None = None,
    logger: StructuredLogger | None = None,
    exit_process: bool = False,
) -> int:
    """Log a terminal error, clean up and record it before the script stops.

    ``cleanup`` runs unless ``settings.clean`` is false; a coroutine function
    is awaited and any error it raises is logged, never propagated. When
    ``generate_failed_file`` is set and ``failed_execution_file`` is known,
    ``"<timestamp>: <message>"`` is appended to that file.

    Args:
        error_code: Exit code describing the failure.
        message: Human-readable description of the failure.
        cleanup: Optional sync or async callable releasing partial work.
        settings: Failure switches. Read from the environment when omitted.
        logger: Logger for the error and cleanup events.
        exit_process: Raise ``SystemExit(error_code)`` instead of returning.

    Returns:
        ``error_code``, for ``return await handle_error_with_cleanup(...)``.
    """
    resolved = FailureHandlingSettings() if settings is None else settings
    log = _default_logger(logger)
    log_error(log, "error_handler.failed", error_code=error_code, error=message)

    if cleanup is not None and not resolved.clean:
        log_debug(log, "error_handler.cleanup_skipped", error_code=error_code)
    elif cleanup is not None:
        try:
            outcome = cleanup()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            log_warning(
                log,
                "error_handler.cleanup_failed",
                error_code=error_code,
                error=str(exc),
            )
        else:
            log_debug(log, "error_handler.cleanup_done", error_code=error_code)

    target = resolved.failed_execution_file
    if resolved.generate_failed_file and target is not None:
        await asyncio.to_thread(
            _append_line, target, f"{_utcnow().isoformat()}: {message}\n"
        )

    if exit_process:
        raise SystemExit(error_code)
    return error_code


class MarkerFileReporter:
    """Write a failed-execution marker file and forward to a notifier.

    The marker is written only when both ``generate_failed_file`` and
    ``only_execution`` are set, and the notifier is called only when
    ``send_alert_email`` is also set. Otherwise the failure is just logged.
    """

    def __init__(
        self,
        *,
        settings: FailureHandlingSettings | None = None,
        notifier: Callable[[TerminalFailure], None] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._settings = FailureHandlingSettings() if settings is None else settings
        self._notifier = notifier
        self._logger = _default_logger(logger)

    def render(self, failure: TerminalFailure) -> str:
        """Return the marker file body for ``failure``."""
        lines = [
            f"Execution failed at {_utcnow().isoformat()}",
            f"Script: {failure.script_name}",
            f"Error code: {failure.error_code}",
            f"Error: {failure.error_message}",
            f"Process ID: {os.getpid()}",
            f"Server: {socket.gethostname()}",
            "",
            f"Required action: {failure.required_action}",
        ]
        return "\n".join(lines) + "\n"

    def report(self, failure: TerminalFailure) -> bool:
        """Write the marker, then notify. Notifier errors propagate."""
        if not (self._settings.generate_failed_file and self._settings.only_execution):
            log_debug(
                self._logger,
                "failure_marker.skipped",
                script=failure.script_name,
                error_code=failure.error_code,
                generate_failed_file=self._settings.generate_failed_file,
                only_execution=self._settings.only_execution,
            )
            return False

        failure.marker_file.parent.mkdir(parents=True, exist_ok=True)
        failure.marker_file.write_text(self.render(failure), encoding="utf-8")
        log_error(
            self._logger,
            "failure_marker.created",
            script=failure.script_name,
            error_code=failure.error_code,
            marker_file=str(failure.marker_file),
            error=failure.error_message,
        )
        if self._notifier is not None and self._settings.send_alert_email:
            self._notifier(failure)
        return True
