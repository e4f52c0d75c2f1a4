from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from fleet_breaker.circuit_breaker.exceptions import StoreUnavailableError
from fleet_breaker.circuit_breaker.storage import AbstractBreakerStore

REASON_READY = "ready"
REASON_DEPENDENCY_UNAVAILABLE = "dependency_unavailable"
REASON_CHECK_FAILED = "check_failed"
REASON_STORE_UNREACHABLE = "store_unreachable"
_logger = logging.getLogger(__name__)

ReadinessCheck = Callable[[], Awaitable["CheckResult"]]


@dataclass(frozen=True)
class CheckResult:
    """Result of one dependency readiness check."""

    name: str
    ok: bool
    reason: str | None = None
    detail: str = ""
    data: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze check metadata mapping to keep snapshots read-only."""
        frozen_data = MappingProxyType(dict(self.data))
        object.__setattr__(self, "data", frozen_data)


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Immutable snapshot of readiness and per-check outcomes."""

    status: str
    ready: bool
    reason: str
    detail: str
    last_checked_at: float
    check_results: tuple[CheckResult, ...]


def make_store_check(
    *,
    store: AbstractBreakerStore,
    timeout_seconds: float = 2.0,
    name: str = "breaker_store",
) -> ReadinessCheck:
    """Build a readiness check that pings the shared breaker store.

    Breakers keep working while the store is down (per their fail-open
    policy), so this check is what surfaces the degraded mode to operators.
    """

    async def _check() -> CheckResult:
        start = time.perf_counter()
        try:
            async with asyncio.timeout(timeout_seconds):
                ok = await store.ping()
        except TimeoutError:
            return CheckResult(
                name=name,
                ok=False,
                reason=REASON_STORE_UNREACHABLE,
                detail=f"ping_timeout_seconds={timeout_seconds:g}",
            )
        except StoreUnavailableError as exc:
            return CheckResult(
                name=name,
                ok=False,
                reason=REASON_STORE_UNREACHABLE,
                detail=str(exc),
            )
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        if not ok:
            return CheckResult(
                name=name,
                ok=False,
                reason=REASON_STORE_UNREACHABLE,
                detail="ping returned false",
                data={"latency_ms": latency_ms},
            )
        return CheckResult(name=name, ok=True, data={"latency_ms": latency_ms})

    _check.__name__ = name
    return _check


async def evaluate_readiness_once(
    *,
    checks: Sequence[ReadinessCheck],
    now_fn: Callable[[], float] = time.time,
) -> ReadinessSnapshot:
    """Evaluate all readiness checks once and return a new snapshot.

    A check that raises is recorded as failed; it never aborts evaluation of
    the remaining checks.
    """
    results: list[CheckResult] = []
    for check in checks:
        try:
            result = await check()
            results.append(result)
        except Exception as exc:
            check_name = getattr(check, "__name__", "unnamed_check")
            _logger.warning(
                "Readiness check raised; recording as failed",
                exc_info=True,
                extra={"check": check_name},
            )
            results.append(
                CheckResult(
                    name=check_name,
                    ok=False,
                    reason=REASON_CHECK_FAILED,
                    detail=f"{exc.__class__.__name__}: {exc}",
                )
            )

    ready = all(result.ok for result in results)
    reason = REASON_READY
    detail = ""
    if not ready:
        first_failure = next(result for result in results if not result.ok)
        reason = first_failure.reason or REASON_DEPENDENCY_UNAVAILABLE
        detail = first_failure.detail

    return ReadinessSnapshot(
        status="ok" if ready else "degraded",
        ready=ready,
        reason=reason,
        detail=detail,
        last_checked_at=now_fn(),
        check_results=tuple(results),
    )
