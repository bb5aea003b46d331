"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of one operation's breaker record.

    Attributes:
        name: Operation name the record belongs to.
        state: Current breaker state.
        failure_count: Failures counted since the last success or reset.
        last_failure_at: Monotonic timestamp of the last counted failure, or
            ``0.0`` when none was recorded.
    """

    name: str
    state: CircuitState
    failure_count: int
    last_failure_at: float

    @classmethod
    def initial(cls, name: str) -> "BreakerSnapshot":
        """Return the record reported for a never-seen operation name."""
        return cls(
            name=name,
            state=CircuitState.CLOSED,
            failure_count=0,
            last_failure_at=0.0,
        )
