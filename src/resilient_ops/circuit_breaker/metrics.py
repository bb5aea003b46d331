"""Observability hooks for the circuit breaker registry."""

from typing import Protocol

from resilient_ops.circuit_breaker.state import CircuitState


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Every event carries the operation name, so one listener can observe
        all records of a registry.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(self, name: str, exit_code: int, elapsed: float) -> None:
        """Handle failed protected call completion."""
