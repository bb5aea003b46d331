from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from resilient_ops.file_ops import (
    FileOperationKind,
    StrPath,
    check_file_operation,
    perform_file_operation,
)
from resilient_ops.logging import (
    StructuredLogger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)

CleanupAction = Callable[[], object | Awaitable[object]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Attempt count and doubling-delay boundaries for the retrier."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")


def _attempt_failed(succeeded: object) -> bool:
    return succeeded is False


def build_backoff_retrying(
    *,
    policy: BackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` over attempts that return ``True``/``False``.

    Delays double from ``initial_delay`` up to ``max_delay`` without jitter.
    Once attempts are exhausted the loop returns ``False`` instead of raising.
    """
    wait = wait_exponential(multiplier=policy.initial_delay, max=policy.max_delay)
    stop = stop_after_attempt(policy.max_attempts)
    if before_sleep is None:
        return AsyncRetrying(
            retry=retry_if_result(_attempt_failed),
            wait=wait,
            stop=stop,
            sleep=asyncio.sleep if sleep is None else sleep,
            retry_error_callback=lambda _state: False,
        )
    return AsyncRetrying(
        retry=retry_if_result(_attempt_failed),
        wait=wait,
        stop=stop,
        sleep=asyncio.sleep if sleep is None else sleep,
        before_sleep=before_sleep,
        retry_error_callback=lambda _state: False,
    )


async def retry_file_operation(
    kind: str | FileOperationKind,
    source: StrPath,
    destination: StrPath | None = None,
    *,
    max_attempts: int | None = None,
    cleanup: CleanupAction | None = None,
    policy: BackoffPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    logger: StructuredLogger | None = None,
) -> bool:
    """Run a copy/move/delete with local exponential-backoff retries.

    No breaker state is shared between calls. After each failed attempt
    except the last, ``cleanup`` runs (its errors are logged and ignored) and
    the retrier waits 1s, 2s, 4s, ... capped at 60s by default.

    Args:
        kind: ``copy``, ``move`` or ``delete``.
        source: Source path.
        destination: Target path, required for ``copy`` and ``move``.
        max_attempts: Overrides ``policy.max_attempts`` when given.
        cleanup: Optional best-effort action run between attempts; a
            coroutine function is awaited.
        policy: Attempt and delay boundaries.
        sleep: Awaitable sleep used between attempts.
        logger: Structured logger. Defaults to a structlog logger.

    Returns:
        ``True`` when an attempt succeeded, ``False`` on invalid input or
        after the last failed attempt.
    """
    log: StructuredLogger = (
        structlog.stdlib.get_logger(__name__) if logger is None else logger
    )
    parsed, problem = check_file_operation(kind, source, destination)
    if parsed is None:
        log_error(log, "file_retry.invalid_call", operation=str(kind), reason=problem)
        return False

    resolved = BackoffPolicy() if policy is None else policy
    if max_attempts is not None:
        resolved = BackoffPolicy(
            max_attempts=max_attempts,
            initial_delay=resolved.initial_delay,
            max_delay=resolved.max_delay,
        )

    pause = asyncio.sleep if sleep is None else sleep

    async def _cleanup_then_sleep(seconds: float) -> None:
        if cleanup is not None:
            try:
                outcome = cleanup()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                log_warning(
                    log,
                    "file_retry.cleanup_failed",
                    operation=str(parsed),
                    source=str(source),
                    error=str(exc),
                )
        await pause(seconds)

    def _log_wait(state: RetryCallState) -> None:
        delay = 0.0 if state.next_action is None else state.next_action.sleep
        log_debug(
            log,
            "file_retry.waiting",
            operation=str(parsed),
            source=str(source),
            attempt=state.attempt_number,
            delay_seconds=delay,
        )

    async def _attempt() -> bool:
        try:
            await asyncio.to_thread(perform_file_operation, parsed, source, destination)
        except OSError as exc:
            log_warning(
                log,
                "file_retry.attempt_failed",
                operation=str(parsed),
                source=str(source),
                error=str(exc),
            )
            return False
        return True

    retrying = build_backoff_retrying(
        policy=resolved,
        sleep=_cleanup_then_sleep,
        before_sleep=_log_wait,
    )
    succeeded = await retrying(_attempt)
    if succeeded:
        log_info(
            log,
            "file_retry.succeeded",
            operation=str(parsed),
            source=str(source),
            attempts=retrying.statistics.get("attempt_number", 1),
        )
    else:
        log_error(
            log,
            "file_retry.exhausted",
            operation=str(parsed),
            source=str(source),
            max_attempts=resolved.max_attempts,
        )
    return bool(succeeded)
