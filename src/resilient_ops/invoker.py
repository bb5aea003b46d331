"""Deadline-bounded execution of a single work action."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from resilient_ops.errors import CommandFailedError

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CIRCUIT_OPEN = 75
EXIT_TIMEOUT = 124

WorkAction = Callable[[], Awaitable[int | None]]


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one timed invocation."""

    succeeded: bool
    exit_code: int
    timed_out: bool = False
    error: Exception | None = None


async def invoke_with_timeout(action: WorkAction, timeout: float) -> InvocationResult:
    """Run ``action`` once and report success or failure within ``timeout``.

    The action signals success by returning ``0``, ``None`` or ``True``.
    ``False`` maps to ``EXIT_FAILURE`` and any other non-zero return value is
    passed through as the exit code. ``CommandFailedError`` contributes its
    own exit code and any other exception maps to ``EXIT_FAILURE``. Only when
    this deadline is hit is the action cancelled and ``EXIT_TIMEOUT``
    reported; a ``TimeoutError`` raised by the action itself is a plain
    failure.

    Args:
        action: Async zero-argument callable to execute.
        timeout: Wall-clock deadline in seconds.

    Returns:
        The invocation outcome. Cancellation of the calling task propagates.
    """
    try:
        async with asyncio.timeout(timeout) as deadline:
            exit_code = await action()
    except TimeoutError as exc:
        if not deadline.expired():
            return InvocationResult(succeeded=False, exit_code=EXIT_FAILURE, error=exc)
        return InvocationResult(
            succeeded=False,
            exit_code=EXIT_TIMEOUT,
            timed_out=True,
            error=exc,
        )
    except CommandFailedError as exc:
        return InvocationResult(succeeded=False, exit_code=exc.exit_code, error=exc)
    except Exception as exc:
        return InvocationResult(succeeded=False, exit_code=EXIT_FAILURE, error=exc)

    if isinstance(exit_code, bool):
        exit_code = EXIT_SUCCESS if exit_code else EXIT_FAILURE
    if exit_code is None or exit_code == EXIT_SUCCESS:
        return InvocationResult(succeeded=True, exit_code=EXIT_SUCCESS)
    return InvocationResult(succeeded=False, exit_code=exit_code)
