"""Result values returned by protected executions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from resilient_ops.circuit_breaker.exceptions import CircuitOpenError
from resilient_ops.errors import InvalidOperationError, OperationFailedError
from resilient_ops.invoker import (
    EXIT_CIRCUIT_OPEN,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    InvocationResult,
)


class ExecutionOutcome(StrEnum):
    """How a protected execution ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"
    INVALID = "invalid"


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one ``CircuitBreakerRegistry.execute`` call.

    Attributes:
        name: Operation name the call was made for.
        outcome: How the call ended.
        exit_code: Exit code of the attempt, ``EXIT_CIRCUIT_OPEN`` for
            rejections and ``EXIT_FAILURE`` for invalid calls.
        detail: Short human-readable reason for non-successful outcomes.
        retry_after: Seconds until a trial may run, set for rejections only.
    """

    name: str
    outcome: ExecutionOutcome
    exit_code: int
    detail: str = ""
    retry_after: float | None = None

    @property
    def ok(self) -> bool:
        """Return true when the operation ran and succeeded."""
        return self.outcome == ExecutionOutcome.SUCCEEDED

    @property
    def rejected(self) -> bool:
        """Return true when the open circuit prevented the attempt."""
        return self.outcome == ExecutionOutcome.REJECTED

    def raise_for_outcome(self) -> None:
        """Raise the exception matching a non-successful outcome.

        Raises:
            CircuitOpenError: The circuit rejected the call.
            InvalidOperationError: The call had missing or invalid inputs.
            OperationFailedError: The operation ran and failed or timed out.
        """
        if self.outcome == ExecutionOutcome.SUCCEEDED:
            return
        if self.outcome == ExecutionOutcome.REJECTED:
            retry_after = 0.0 if self.retry_after is None else self.retry_after
            raise CircuitOpenError(self.name, retry_after=retry_after)
        if self.outcome == ExecutionOutcome.INVALID:
            raise InvalidOperationError(self.detail or f"invalid call: {self.name}")
        raise OperationFailedError(self.name, self.exit_code, self.detail)

    @classmethod
    def invalid(cls, name: str, detail: str) -> ExecutionResult:
        """Build the result for a call that failed its preconditions."""
        return cls(
            name=name,
            outcome=ExecutionOutcome.INVALID,
            exit_code=EXIT_FAILURE,
            detail=detail,
        )

    @classmethod
    def rejected_call(cls, name: str, retry_after: float) -> ExecutionResult:
        """Build the result for a call refused by an open circuit."""
        return cls(
            name=name,
            outcome=ExecutionOutcome.REJECTED,
            exit_code=EXIT_CIRCUIT_OPEN,
            detail="circuit open",
            retry_after=retry_after,
        )

    @classmethod
    def from_invocation(
        cls, name: str, invocation: InvocationResult
    ) -> ExecutionResult:
        """Build the result for a call that reached the timed invoker."""
        if invocation.succeeded:
            return cls(
                name=name,
                outcome=ExecutionOutcome.SUCCEEDED,
                exit_code=EXIT_SUCCESS,
            )
        if invocation.timed_out:
            outcome = ExecutionOutcome.TIMED_OUT
        else:
            outcome = ExecutionOutcome.FAILED
        detail = "" if invocation.error is None else _describe(invocation.error)
        return cls(
            name=name,
            outcome=outcome,
            exit_code=invocation.exit_code,
            detail=detail,
        )


def _describe(error: Exception) -> str:
    message = str(error)
    if not message:
        return error.__class__.__name__
    return f"{error.__class__.__name__}: {message}"
