"""Core circuit breaker implementation."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, fields
from typing import TypeVar

import structlog

from fleet_breaker.circuit_breaker.exceptions import (
    CircuitOpenError,
    RejectReason,
    StoreUnavailableError,
)
from fleet_breaker.circuit_breaker.metrics import BreakerListener
from fleet_breaker.circuit_breaker.state import (
    BreakerKeys,
    CircuitState,
    FailurePolicy,
    FailureResult,
)
from fleet_breaker.circuit_breaker.storage import AbstractBreakerStore
from fleet_breaker.logging import StructuredLogger, log_info, log_warning

T = TypeVar("T")

_logger = structlog.stdlib.get_logger(__name__)

# asyncio.timeout raises the builtin TimeoutError when store_timeout expires.
_STORE_ERRORS = (StoreUnavailableError, TimeoutError)


def _now() -> float:
    return time.time()


def _now_ms() -> int:
    return int(_now() * 1000)


@dataclass(frozen=True, slots=True)
class BreakerConfig:
    """Circuit breaker configuration values.

    Invalid values never fail construction. A non-positive or NaN threshold,
    window, cooldown or store timeout, a negative or NaN lease, or an empty
    key prefix is replaced with its default and a
    ``circuit_breaker.config_defaulted`` warning is logged.

    Attributes:
        failure_threshold: Failures within ``fail_window`` that open the
            breaker.
        fail_window: Seconds a failure counter lives after its first failure.
        open_cooldown: Seconds the breaker rejects calls after opening.
        half_open_lease: Seconds after the cooldown during which the next
            failure re-opens immediately. Also the probe lease length when
            ``single_probe`` is set. ``0`` disables the half-open window.
        fail_open: Allow calls when the store cannot be read.
        key_prefix: Prefix for every store key.
        single_probe: Admit a single fleet-wide probe per half-open window.
        store_timeout: Optional per-operation deadline in seconds for store
            round-trips.
    """

    failure_threshold: int = 5
    fail_window: float = 10.0
    open_cooldown: float = 30.0
    half_open_lease: float = 5.0
    fail_open: bool = True
    key_prefix: str = "cb:"
    single_probe: bool = False
    store_timeout: float | None = None

    def __post_init__(self) -> None:
        defaults = {field.name: field.default for field in fields(self)}
        invalid: list[str] = []
        # Negated comparisons so NaN is rejected too.
        if not self.failure_threshold >= 1:
            invalid.append("failure_threshold")
        if not self.fail_window > 0:
            invalid.append("fail_window")
        if not self.open_cooldown > 0:
            invalid.append("open_cooldown")
        if not self.half_open_lease >= 0:
            invalid.append("half_open_lease")
        if not self.key_prefix:
            invalid.append("key_prefix")
        if self.store_timeout is not None and not self.store_timeout > 0:
            invalid.append("store_timeout")

        for name in invalid:
            log_warning(
                _logger,
                "circuit_breaker.config_defaulted",
                field=name,
                value=getattr(self, name),
                default=defaults[name],
            )
            object.__setattr__(self, name, defaults[name])

    @property
    def marker_ttl(self) -> float:
        """Lifetime of the open marker: cooldown plus half-open window."""
        return self.open_cooldown + self.half_open_lease


class CircuitBreaker:
    """Fleet-wide breaker whose state lives entirely in a shared store.

    The instance itself holds no mutable state, so any number of processes can
    hold a breaker with the same name and store and observe one circuit.
    """

    def __init__(
        self,
        name: str,
        *,
        store: AbstractBreakerStore,
        config: BreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a circuit breaker.

        Args:
            name: Protected operation name, used in store keys and logs.
            store: Shared state store.
            config: Breaker behavior configuration. Defaults to
                ``BreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger. Defaults to this module's structlog
                logger.
        """
        self.name = name
        self.config = BreakerConfig() if config is None else config
        self.keys = BreakerKeys.build(self.config.key_prefix, name)
        self._store = store
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = _logger if logger is None else logger

    async def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                await listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    async def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self.name)
            except Exception:
                continue

    async def _emit_store_unavailable(
        self, operation: str, exc: BaseException
    ) -> None:
        for listener in self._listeners:
            try:
                await listener.on_store_unavailable(self.name, operation, exc)
            except Exception:
                continue

    async def _store_call(self, call: Callable[[], Awaitable[T]]) -> T:
        async with asyncio.timeout(self.config.store_timeout):
            return await call()

    async def _reject(
        self, retry_after: float, reason: RejectReason
    ) -> CircuitOpenError:
        await self._emit_call_rejected()
        return CircuitOpenError(self.name, retry_after=retry_after, reason=reason)

    async def _degrade(self, operation: str, exc: BaseException) -> None:
        """Apply the fail-open policy after a failed store read."""
        await self._emit_store_unavailable(operation, exc)
        log_warning(
            self._logger,
            "circuit_breaker.store_unavailable",
            breaker=self.name,
            operation=operation,
            fail_open=self.config.fail_open,
            error=str(exc) or exc.__class__.__name__,
        )
        if self.config.fail_open:
            return
        raise await self._reject(0.0, "store_unavailable") from exc

    async def allow(self) -> None:
        """Decide whether a protected call may proceed.

        Returns normally when the call may proceed.

        Raises:
            CircuitOpenError: When the breaker is open, another process holds
                the half-open probe lease, or the store is unreachable and
                ``fail_open`` is disabled.
        """
        try:
            marker = await self._store_call(lambda: self._store.get(self.keys.open))
        except _STORE_ERRORS as exc:
            await self._degrade("get", exc)
            return
        if marker is None:
            return

        try:
            half_open_at_ms = int(marker)
        except ValueError as exc:
            await self._degrade("parse_marker", exc)
            return

        now_ms = _now_ms()
        if now_ms < half_open_at_ms:
            raise await self._reject((half_open_at_ms - now_ms) / 1000, "open")

        if not self.config.single_probe:
            return

        try:
            acquired = await self._store_call(
                lambda: self._store.set(
                    self.keys.half,
                    str(now_ms),
                    ttl=self.config.half_open_lease,
                    only_if_absent=True,
                )
            )
        except _STORE_ERRORS as exc:
            await self._degrade("acquire_probe", exc)
            return
        if not acquired:
            raise await self._reject(0.0, "probe_in_flight")

    async def on_success(self) -> None:
        """Clear the failure counter, open marker and probe lease.

        Store errors are logged and swallowed.
        """
        try:
            await self._store_call(
                lambda: self._store.delete(
                    self.keys.open, self.keys.fails, self.keys.half
                )
            )
        except _STORE_ERRORS as exc:
            await self._write_failed("on_success", exc)

    async def on_failure(self) -> None:
        """Record one failure, opening the breaker at the threshold.

        Store errors are logged and swallowed.
        """
        policy = FailurePolicy(
            threshold=self.config.failure_threshold,
            fail_window_ms=int(self.config.fail_window * 1000),
            open_cooldown_ms=int(self.config.open_cooldown * 1000),
            marker_ttl_ms=int(self.config.marker_ttl * 1000),
            now_ms=_now_ms(),
        )
        try:
            outcome = await self._store_call(
                lambda: self._store.record_failure(self.keys, policy)
            )
        except _STORE_ERRORS as exc:
            await self._write_failed("on_failure", exc)
            return

        if outcome.result == FailureResult.OPENED:
            old = CircuitState.CLOSED
        elif outcome.result == FailureResult.REOPENED:
            old = CircuitState.HALF_OPEN
        else:
            return

        log_info(
            self._logger,
            "circuit_breaker.opened",
            breaker=self.name,
            previous_state=str(old),
            cooldown_seconds=self.config.open_cooldown,
        )
        await self._emit_state_change(old, CircuitState.OPEN)

    async def _write_failed(self, operation: str, exc: BaseException) -> None:
        await self._emit_store_unavailable(operation, exc)
        log_warning(
            self._logger,
            "circuit_breaker.write_failed",
            breaker=self.name,
            operation=operation,
            error=str(exc) or exc.__class__.__name__,
        )
