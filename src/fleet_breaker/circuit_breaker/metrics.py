"""Observability hooks for circuit breakers."""

from typing import Protocol

from fleet_breaker.circuit_breaker.state import CircuitState


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        State changes are reported only by the process whose failure caused
        them. Other processes observe the new state on their next ``allow``.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    async def on_store_unavailable(
        self, name: str, operation: str, exc: BaseException
    ) -> None:
        """Handle a failed round-trip to the shared store."""
