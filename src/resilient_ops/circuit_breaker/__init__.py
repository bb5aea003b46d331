"""Per-operation async circuit breakers.

This package implements the circuit breaker pattern from *Release It!* as a
registry of independent records keyed by operation name.

Key behavior notes:
  - Any success closes the circuit and clears the failure count, so counted
    failures are consecutive failures since the last success.
  - An ``OPEN`` circuit rejects calls until ``reset_timeout`` seconds have
    passed since the last failure; the next call then runs as the single
    ``HALF_OPEN`` trial. A failed trial reopens the circuit immediately.
  - Half-open trials are conservative: at most one in-flight trial call is
    permitted per operation name and concurrent callers are rejected.
  - Calls with an empty operation name or a non-callable action are reported
    as invalid and never touch breaker state.
"""

from resilient_ops.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from resilient_ops.circuit_breaker.metrics import BreakerListener
from resilient_ops.circuit_breaker.registry import CircuitBreakerRegistry, WorkUnit
from resilient_ops.circuit_breaker.result import ExecutionOutcome, ExecutionResult
from resilient_ops.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilient_ops.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)

__all__ = [
    "AbstractBreakerStorage",
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreakerError",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "ExecutionOutcome",
    "ExecutionResult",
    "InMemoryBreakerStorage",
    "WorkUnit",
]
