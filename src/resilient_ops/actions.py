from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from contextlib import suppress
from functools import partial
from os import PathLike

from resilient_ops.invoker import EXIT_SUCCESS, WorkAction


def command_action(
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | PathLike[str] | None = None,
) -> WorkAction:
    """Build a work action that runs ``argv`` and returns its exit code.

    The command is executed without a shell. If the surrounding deadline
    cancels the action, the child process is killed and reaped before the
    cancellation propagates.
    """
    if not argv:
        raise ValueError("argv must contain at least the program name")
    program, *arguments = argv
    child_env = dict(env) if env is not None else None

    async def _run_command() -> int:
        process = await asyncio.create_subprocess_exec(
            program,
            *arguments,
            stdout=asyncio.subprocess.DEVNULL,
            env=child_env,
            cwd=cwd,
        )
        try:
            return await process.wait()
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            await asyncio.shield(process.wait())
            raise

    return _run_command


def blocking_action(
    func: Callable[..., object],
    *args: object,
    **kwargs: object,
) -> WorkAction:
    """Build a work action that runs a blocking callable in a worker thread.

    An ``int`` returned by ``func`` is used as the exit code; any other return
    value counts as success. The worker thread cannot be interrupted, so a
    deadline only stops the caller from waiting for it.
    """
    call = partial(func, *args, **kwargs)

    async def _run_blocking() -> int:
        result = await asyncio.to_thread(call)
        if isinstance(result, int) and not isinstance(result, bool):
            return result
        return EXIT_SUCCESS

    return _run_blocking
