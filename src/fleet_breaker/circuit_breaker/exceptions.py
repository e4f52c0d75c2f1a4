"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - The shared state store being unreachable. This one never escapes
    ``CircuitBreaker.allow``; it is translated by the fail-open policy.
"""

from typing import Literal

from fleet_breaker.errors import TransientError

RejectReason = Literal["open", "probe_in_flight", "store_unavailable"]


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until the half-open window starts.
        reason: Why the call was rejected.
    """

    def __init__(
        self,
        breaker_name: str,
        retry_after: float,
        reason: RejectReason = "open",
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next probe window opens.
            reason: Rejection cause.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        self.reason = reason
        super().__init__(
            f"circuit_open: {breaker_name} reason={reason} "
            f"retry_after={retry_after:g}s"
        )


class StoreUnavailableError(CircuitBreakerError, TransientError):
    """Raised by store backends when the shared store cannot be reached."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        message = f"store_unavailable: {operation}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
