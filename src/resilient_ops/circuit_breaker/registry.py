"""Per-operation circuit breaker registry."""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from resilient_ops.circuit_breaker.metrics import BreakerListener
from resilient_ops.circuit_breaker.result import ExecutionOutcome, ExecutionResult
from resilient_ops.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilient_ops.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)
from resilient_ops.invoker import WorkAction, invoke_with_timeout
from resilient_ops.logging import StructuredLogger, log_error, log_info, log_warning

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RESET_TIMEOUT_SECONDS = 60.0


def _monotonic() -> float:
    return time.monotonic()


class _TrialGates:
    """Allow at most one in-flight half-open trial per operation name."""

    def __init__(self) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.Lock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.Lock()
        self._held: set[str] = set()

    def try_acquire(self, name: str) -> bool:
        if self._thread_lock is None:
            return self._acquire(name)
        with self._thread_lock:
            return self._acquire(name)

    def release(self, name: str) -> None:
        if self._thread_lock is None:
            self._held.discard(name)
            return
        with self._thread_lock:
            self._held.discard(name)

    def _acquire(self, name: str) -> bool:
        if name in self._held:
            return False
        self._held.add(name)
        return True


@dataclass(frozen=True, slots=True)
class WorkUnit:
    """One executable action plus the breaker tuning used for this call.

    Attributes:
        action: Async zero-argument callable returning an exit code.
        timeout: Seconds the action may run before it is cancelled.
        failure_threshold: Counted failures that open the circuit.
        reset_timeout: Seconds after the last failure before a trial may run.
    """

    action: WorkAction
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    reset_timeout: float = DEFAULT_RESET_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")


class CircuitBreakerRegistry:
    """Independent circuit breakers keyed by operation name.

    A failing operation only opens its own circuit; other names keep running.
    Each ``execute`` call makes at most one attempt and never retries.
    """

    def __init__(
        self,
        *,
        storage: AbstractBreakerStorage | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a registry with optional custom dependencies.

        Args:
            storage: Record storage backend. Defaults to in-memory storage.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger. Defaults to a structlog logger.
        """
        self._storage = InMemoryBreakerStorage() if storage is None else storage
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger: StructuredLogger = (
            structlog.stdlib.get_logger(__name__) if logger is None else logger
        )
        self._trial_gates = _TrialGates()

    async def _emit_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        for listener in self._listeners:
            try:
                await listener.on_state_change(name, old, new)
            except Exception:
                continue

    async def _emit_call_rejected(self, name: str) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(name)
            except Exception:
                continue

    async def _emit_call_succeeded(self, name: str, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_succeeded(name, elapsed)
            except Exception:
                continue

    async def _emit_call_failed(
        self, name: str, exit_code: int, elapsed: float
    ) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(name, exit_code, elapsed)
            except Exception:
                continue

    async def status(self, name: str) -> BreakerSnapshot:
        """Return the record for ``name``; unknown names report the defaults."""
        return await self._storage.get_state(name)

    async def reset(self, name: str) -> BreakerSnapshot:
        """Force ``name`` back to ``CLOSED`` with cleared counters."""
        previous = await self._storage.get_state(name)
        snapshot = await self._storage.reset(name)
        log_info(
            self._logger,
            "circuit_breaker.reset",
            operation=name,
            previous_state=str(previous.state),
        )
        if previous.state != CircuitState.CLOSED:
            await self._emit_state_change(name, previous.state, CircuitState.CLOSED)
        return snapshot

    async def execute(self, name: str, work: WorkUnit) -> ExecutionResult:
        """Run ``work`` under the circuit for ``name``.

        Args:
            name: Operation name whose record tracks this resource.
            work: Action and breaker tuning for this call.

        Returns:
            ``SUCCEEDED`` when the action ran and succeeded, ``FAILED`` or
            ``TIMED_OUT`` carrying the attempt's exit code, ``REJECTED`` when the
            open circuit prevented the attempt, ``INVALID`` when ``name`` or the
            action is missing. Invalid calls do not touch breaker state.
        """
        if not name:
            return self._invalid(name, "operation name is required")
        if not callable(work.action):
            return self._invalid(name, "work action must be callable")

        snapshot = await self._storage.get_state(name)
        rejection = self._rejection_for(snapshot, work)
        if rejection is not None:
            return await self._reject(name, rejection)

        trial_acquired = False
        if snapshot.state != CircuitState.CLOSED:
            if not self._trial_gates.try_acquire(name):
                return await self._reject(name, 0.0)
            trial_acquired = True

        try:
            if trial_acquired:
                # Another trial may have finished between the read and the gate.
                snapshot = await self._storage.get_state(name)
                rejection = self._rejection_for(snapshot, work)
                if rejection is not None:
                    return await self._reject(name, rejection)
                if snapshot.state == CircuitState.OPEN:
                    snapshot = await self._storage.mark_half_open(name)
                    log_info(self._logger, "circuit_breaker.half_open", operation=name)
                    await self._emit_state_change(
                        name, CircuitState.OPEN, CircuitState.HALF_OPEN
                    )
            return await self._attempt(name, work, snapshot)
        finally:
            if trial_acquired:
                self._trial_gates.release(name)

    @staticmethod
    def _rejection_for(snapshot: BreakerSnapshot, work: WorkUnit) -> float | None:
        if snapshot.state != CircuitState.OPEN:
            return None
        elapsed = _monotonic() - snapshot.last_failure_at
        if elapsed < work.reset_timeout:
            return work.reset_timeout - elapsed
        return None

    def _invalid(self, name: str, reason: str) -> ExecutionResult:
        log_error(
            self._logger,
            "circuit_breaker.invalid_call",
            operation=name,
            reason=reason,
        )
        return ExecutionResult.invalid(name, reason)

    async def _reject(self, name: str, retry_after: float) -> ExecutionResult:
        log_warning(
            self._logger,
            "circuit_breaker.rejected",
            operation=name,
            retry_after=round(retry_after, 3),
        )
        await self._emit_call_rejected(name)
        return ExecutionResult.rejected_call(name, retry_after)

    async def _attempt(
        self, name: str, work: WorkUnit, snapshot: BreakerSnapshot
    ) -> ExecutionResult:
        is_trial = snapshot.state == CircuitState.HALF_OPEN
        start = _monotonic()
        with structlog.contextvars.bound_contextvars(operation=name):
            invocation = await invoke_with_timeout(work.action, work.timeout)
        finished = _monotonic()
        elapsed = max(finished - start, 0.0)
        result = ExecutionResult.from_invocation(name, invocation)

        if result.outcome == ExecutionOutcome.SUCCEEDED:
            await self._storage.record_success(name)
            log_info(self._logger, "circuit_breaker.call_succeeded", operation=name)
            if is_trial:
                log_info(self._logger, "circuit_breaker.closed", operation=name)
                await self._emit_state_change(
                    name, CircuitState.HALF_OPEN, CircuitState.CLOSED
                )
            await self._emit_call_succeeded(name, elapsed)
            return result

        updated = await self._storage.record_failure(
            name,
            failed_at=finished,
            failure_threshold=work.failure_threshold,
            force_open=is_trial,
        )
        log_error(
            self._logger,
            "circuit_breaker.call_failed",
            operation=name,
            outcome=str(result.outcome),
            exit_code=result.exit_code,
            failure_count=updated.failure_count,
            detail=result.detail,
        )
        await self._emit_call_failed(name, result.exit_code, elapsed)
        if updated.state == CircuitState.OPEN and snapshot.state != CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_breaker.opened",
                operation=name,
                failure_count=updated.failure_count,
                failure_threshold=work.failure_threshold,
            )
            await self._emit_state_change(name, snapshot.state, CircuitState.OPEN)
        return result
