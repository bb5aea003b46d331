"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - A call that ran and failed (see ``resilient_ops.errors``).
"""

from resilient_ops.errors import ResilienceError


class CircuitBreakerError(ResilienceError):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the operation whose circuit rejected the call.
        retry_after: Seconds until a half-open trial may be attempted.
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Operation name rejecting the call.
            retry_after: Seconds until the next trial window opens.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"circuit_open: {breaker_name} retry_after={retry_after:g}s")
