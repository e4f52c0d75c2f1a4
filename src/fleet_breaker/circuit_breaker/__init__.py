"""Fleet-wide async circuit breaker backed by a shared key-value store.

Key behavior notes:
  - All breaker state lives in the store: an open marker and a rolling failure
    counter per operation name. ``CircuitBreaker`` instances hold none, so
    every process sharing the store sees one circuit.
  - Failure recording is a single atomic store transform. Crossing the
    threshold creates the open marker and resets the counter in the same step.
  - The open marker's value is the time the half-open window starts. During
    that window traffic flows again and the next failure re-opens at once. By
    default every caller may probe; ``single_probe`` restricts the window to
    one fleet-wide probe holding a short lease.
  - When the store is unreachable, ``allow`` follows ``fail_open``; outcome
    recording logs and drops the write.
"""

from fleet_breaker.circuit_breaker.breaker import BreakerConfig, CircuitBreaker
from fleet_breaker.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
    StoreUnavailableError,
)
from fleet_breaker.circuit_breaker.gate import Gate
from fleet_breaker.circuit_breaker.metrics import BreakerListener
from fleet_breaker.circuit_breaker.registry import BreakerFactory, BreakerRegistry
from fleet_breaker.circuit_breaker.state import (
    BreakerKeys,
    CircuitState,
    FailureOutcome,
    FailurePolicy,
    FailureResult,
)
from fleet_breaker.circuit_breaker.storage import (
    AbstractBreakerStore,
    InMemoryBreakerStore,
)

__all__ = [
    "AbstractBreakerStore",
    "BreakerConfig",
    "BreakerFactory",
    "BreakerKeys",
    "BreakerListener",
    "BreakerRegistry",
    "CircuitBreaker",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "FailureOutcome",
    "FailurePolicy",
    "FailureResult",
    "Gate",
    "InMemoryBreakerStore",
    "StoreUnavailableError",
]
