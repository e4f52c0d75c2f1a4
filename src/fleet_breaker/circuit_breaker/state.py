"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values, as reported to listeners."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class FailureResult(StrEnum):
    """Outcome of one atomic failure recording."""

    COUNTED = "counted"
    OPENED = "opened"
    REOPENED = "reopened"
    ALREADY_OPEN = "already_open"


@dataclass(frozen=True)
class BreakerKeys:
    """Store keys holding the shared state of one breaker.

    Attributes:
        open: Open marker. Its value is the epoch millisecond at which the
            half-open window starts.
        fails: Rolling failure counter.
        half: Half-open probe lease.
    """

    open: str
    fails: str
    half: str

    @classmethod
    def build(cls, prefix: str, name: str) -> "BreakerKeys":
        base = f"{prefix}{name}"
        return cls(open=base, fails=f"{base}:fails", half=f"{base}:half")


@dataclass(frozen=True)
class FailurePolicy:
    """Arguments for the atomic record-failure transform."""

    threshold: int
    fail_window_ms: int
    open_cooldown_ms: int
    marker_ttl_ms: int
    now_ms: int

    @property
    def half_open_at_ms(self) -> int:
        return self.now_ms + self.open_cooldown_ms


@dataclass(frozen=True)
class FailureOutcome:
    """Result of the atomic record-failure transform.

    Attributes:
        failure_count: Counter value observed by this failure. Zero when the
            failure opened the breaker or was not counted.
        result: What the transform did.
    """

    failure_count: int
    result: FailureResult
