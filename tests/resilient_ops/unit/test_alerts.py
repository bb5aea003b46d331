from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

import resilient_ops.alerts as alerts_mod
from resilient_ops.alerts import (
    MarkerFileReporter,
    TerminalFailure,
    handle_error_with_cleanup,
    has_failed_marker,
    terminal_failure_from_result,
)
from resilient_ops.circuit_breaker import ExecutionOutcome, ExecutionResult
from resilient_ops.settings import FailureHandlingSettings
from tests.resilient_ops.support.fakes import FakeLogger


def _enabled(**overrides: object) -> FailureHandlingSettings:
    values: dict[str, object] = {
        "clean": True,
        "generate_failed_file": True,
        "only_execution": True,
        "send_alert_email": True,
        "failed_execution_file": None,
    }
    values.update(overrides)
    return FailureHandlingSettings(**values)


def _failure(marker_file: Path) -> TerminalFailure:
    return TerminalFailure(
        script_name="load_addresses",
        error_code=124,
        error_message="download_x: timed_out",
        required_action="Check the upstream export and remove the marker file.",
        marker_file=marker_file,
    )


def test_terminal_failure_from_result_describes_outcome(tmp_path: Path) -> None:
    result = ExecutionResult(
        name="database_operation_/srv/load.sql",
        outcome=ExecutionOutcome.FAILED,
        exit_code=3,
        detail="CommandFailedError: psql exited 3",
    )

    failure = terminal_failure_from_result(
        result,
        script_name="load_addresses",
        required_action="Fix the SQL script.",
        marker_file=str(tmp_path / "failed"),
    )

    assert failure.error_code == 3
    assert failure.error_message == (
        "database_operation_/srv/load.sql: failed (CommandFailedError: psql exited 3)"
    )
    assert failure.marker_file == tmp_path / "failed"


def test_marker_reporter_writes_marker_and_notifies(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(
        alerts_mod, "_utcnow", lambda: datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    )
    notified: list[TerminalFailure] = []
    logger = FakeLogger()
    reporter = MarkerFileReporter(
        settings=_enabled(), notifier=notified.append, logger=logger
    )
    marker = tmp_path / "state" / "load_addresses.failed"
    failure = _failure(marker)

    assert has_failed_marker(marker) is False
    assert reporter.report(failure) is True

    assert has_failed_marker(marker) is True
    lines = marker.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Execution failed at 2024-05-01T12:00:00+00:00"
    assert lines[1] == "Script: load_addresses"
    assert lines[2] == "Error code: 124"
    assert lines[3] == "Error: download_x: timed_out"
    assert lines[4].startswith("Process ID: ")
    assert lines[5].startswith("Server: ")
    assert lines[-1] == (
        "Required action: Check the upstream export and remove the marker file."
    )
    assert notified == [failure]
    assert logger.events == ["failure_marker.created"]


def test_marker_reporter_propagates_notifier_errors(tmp_path: Path) -> None:
    def _broken_notifier(failure: TerminalFailure) -> None:
        raise ConnectionError("smtp unavailable")

    reporter = MarkerFileReporter(
        settings=_enabled(), notifier=_broken_notifier, logger=FakeLogger()
    )
    marker = tmp_path / "failed"

    with pytest.raises(ConnectionError):
        reporter.report(_failure(marker))

    assert marker.exists()


@pytest.mark.parametrize(
    ("generate_failed_file", "only_execution"),
    [(True, False), (False, True), (False, False)],
)
def test_marker_reporter_skips_marker_unless_both_switches_are_set(
    tmp_path: Path, generate_failed_file: bool, only_execution: bool
) -> None:
    notified: list[TerminalFailure] = []
    logger = FakeLogger()
    reporter = MarkerFileReporter(
        settings=_enabled(
            generate_failed_file=generate_failed_file,
            only_execution=only_execution,
        ),
        notifier=notified.append,
        logger=logger,
    )
    marker = tmp_path / "failed"

    assert reporter.report(_failure(marker)) is False

    assert not marker.exists()
    assert notified == []
    assert logger.events == ["failure_marker.skipped"]


def test_marker_reporter_does_not_notify_when_alert_email_is_off(
    tmp_path: Path,
) -> None:
    notified: list[TerminalFailure] = []
    reporter = MarkerFileReporter(
        settings=_enabled(send_alert_email=False),
        notifier=notified.append,
        logger=FakeLogger(),
    )
    marker = tmp_path / "failed"

    assert reporter.report(_failure(marker)) is True

    assert marker.exists()
    assert notified == []


@pytest.mark.asyncio
async def test_error_handler_cleans_up_and_appends_failed_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(
        alerts_mod, "_utcnow", lambda: datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    )
    failed_file = tmp_path / "state" / "nightly_failed_execution"
    cleaned: list[str] = []
    logger = FakeLogger()

    async def _cleanup() -> None:
        cleaned.append("tmp")

    code = await handle_error_with_cleanup(
        241,
        "Data validation failed",
        _cleanup,
        settings=_enabled(failed_execution_file=failed_file),
        logger=logger,
    )

    assert code == 241
    assert cleaned == ["tmp"]
    assert failed_file.read_text(encoding="utf-8") == (
        "2024-05-01T12:00:00+00:00: Data validation failed\n"
    )
    assert logger.events == ["error_handler.failed", "error_handler.cleanup_done"]


@pytest.mark.asyncio
async def test_error_handler_appends_to_existing_failed_file(tmp_path: Path) -> None:
    failed_file = tmp_path / "failed_execution"
    failed_file.write_text("earlier: first failure\n", encoding="utf-8")

    await handle_error_with_cleanup(
        1,
        "second failure",
        settings=_enabled(failed_execution_file=failed_file),
        logger=FakeLogger(),
    )

    lines = failed_file.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "earlier: first failure"
    assert lines[1].endswith(": second failure")


@pytest.mark.asyncio
async def test_error_handler_skips_cleanup_when_clean_is_off() -> None:
    cleaned: list[int] = []
    logger = FakeLogger()

    await handle_error_with_cleanup(
        1,
        "boom",
        lambda: cleaned.append(1),
        settings=_enabled(clean=False),
        logger=logger,
    )

    assert cleaned == []
    assert "error_handler.cleanup_skipped" in logger.events


@pytest.mark.asyncio
async def test_error_handler_logs_cleanup_errors_and_keeps_going(
    tmp_path: Path,
) -> None:
    failed_file = tmp_path / "failed_execution"
    logger = FakeLogger()

    def _broken_cleanup() -> None:
        raise PermissionError("cannot remove temp dir")

    code = await handle_error_with_cleanup(
        3,
        "boom",
        _broken_cleanup,
        settings=_enabled(failed_execution_file=failed_file),
        logger=logger,
    )

    assert code == 3
    assert "error_handler.cleanup_failed" in logger.events
    assert failed_file.exists()


@pytest.mark.asyncio
async def test_error_handler_writes_nothing_when_failed_file_is_off(
    tmp_path: Path,
) -> None:
    failed_file = tmp_path / "failed_execution"

    await handle_error_with_cleanup(
        1,
        "boom",
        settings=_enabled(
            generate_failed_file=False, failed_execution_file=failed_file
        ),
        logger=FakeLogger(),
    )

    assert not failed_file.exists()


@pytest.mark.asyncio
async def test_error_handler_can_exit_with_error_code() -> None:
    with pytest.raises(SystemExit) as excinfo:
        await handle_error_with_cleanup(
            247,
            "download failed",
            settings=_enabled(),
            logger=FakeLogger(),
            exit_process=True,
        )

    assert excinfo.value.code == 247
