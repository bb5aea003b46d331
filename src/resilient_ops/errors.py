"""Shared error types for resilient_ops."""


class ResilienceError(RuntimeError):
    """Base exception for resilient_ops failures."""


class TransientError(ResilienceError):
    """Generic retry-safe transient dependency failure."""


class CommandFailedError(TransientError):
    """Raised by a work action whose external command exited non-zero."""

    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class OperationFailedError(ResilienceError):
    """Raised on request when a protected operation ran and failed.

    Attributes:
        operation_name: Name of the protected operation.
        exit_code: Exit code reported by the failed attempt.
    """

    def __init__(self, operation_name: str, exit_code: int, detail: str = "") -> None:
        self.operation_name = operation_name
        self.exit_code = exit_code
        message = f"operation_failed: {operation_name} exit_code={exit_code}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InvalidOperationError(ResilienceError, ValueError):
    """Raised on request when a call was rejected for missing or bad inputs."""
