"""Shared state stores for circuit breakers.

Storage is intentionally decoupled from breaker logic. A store is a thin
key-value client plus one atomic transform, ``record_failure``, which backends
must execute as a single indivisible step (for Redis, a Lua script).

Backends raise ``StoreUnavailableError`` for transport failures. Any other
exception is a programming error and propagates unchanged.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from fleet_breaker.circuit_breaker.state import (
    BreakerKeys,
    FailureOutcome,
    FailurePolicy,
    FailureResult,
)


def _now() -> float:
    return time.time()


def _half_open_at(value: str) -> int:
    # An unreadable marker re-opens on the next failure.
    try:
        return int(value)
    except ValueError:
        return 0


class AbstractBreakerStore(ABC):
    """Abstract shared store interface."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored at ``key`` or ``None`` when absent."""

    @abstractmethod
    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl: float,
        only_if_absent: bool = False,
    ) -> bool:
        """Store ``value`` at ``key`` with a TTL in seconds.

        Returns:
            ``False`` only when ``only_if_absent`` is set and the key exists.
        """

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""

    @abstractmethod
    async def increment(self, key: str) -> int:
        """Increment an integer key, creating it at 1 when absent."""

    @abstractmethod
    async def ttl(self, key: str) -> float:
        """Return remaining seconds to live, or a negative value if none."""

    @abstractmethod
    async def record_failure(
        self, keys: BreakerKeys, policy: FailurePolicy
    ) -> FailureOutcome:
        """Atomically count one failure and open the breaker on threshold.

        The transform, executed as one indivisible step:
          1. If the open marker exists and its half-open time has passed, the
             failure re-opens: write a fresh marker, delete the counter and
             the probe lease, return ``REOPENED``.
          2. If the open marker exists otherwise, return ``ALREADY_OPEN``
             without counting.
          3. Increment the counter, giving it a ``fail_window_ms`` expiry if
             it has none.
          4. If the count reached ``threshold``, write the marker, delete the
             counter and the probe lease, return ``OPENED``.
          5. Otherwise return ``COUNTED``.
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` when the store is reachable."""


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at: float | None


class InMemoryBreakerStore(AbstractBreakerStore):
    """Process-local store with the same semantics as the Redis backend.

    Useful for tests and single-process deployments. All mutations run under
    one thread lock with no awaits inside, so every operation is atomic across
    threads and event loops.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now: float) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def _write_marker(
        self, keys: BreakerKeys, policy: FailurePolicy, now: float
    ) -> None:
        self._entries[keys.open] = _Entry(
            value=str(policy.half_open_at_ms),
            expires_at=now + policy.marker_ttl_ms / 1000,
        )
        self._entries.pop(keys.fails, None)
        self._entries.pop(keys.half, None)

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key, _now())
            return None if entry is None else entry.value

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl: float,
        only_if_absent: bool = False,
    ) -> bool:
        with self._lock:
            now = _now()
            if only_if_absent and self._live(key, now) is not None:
                return False
            self._entries[key] = _Entry(value=value, expires_at=now + ttl)
            return True

    async def delete(self, *keys: str) -> int:
        with self._lock:
            now = _now()
            removed = 0
            for key in keys:
                if self._live(key, now) is not None:
                    del self._entries[key]
                    removed += 1
            return removed

    async def increment(self, key: str) -> int:
        with self._lock:
            return self._increment(key, _now())

    def _increment(self, key: str, now: float) -> int:
        entry = self._live(key, now)
        if entry is None:
            self._entries[key] = _Entry(value="1", expires_at=None)
            return 1
        entry.value = str(int(entry.value) + 1)
        return int(entry.value)

    async def ttl(self, key: str) -> float:
        with self._lock:
            now = _now()
            entry = self._live(key, now)
            if entry is None:
                return -2.0
            if entry.expires_at is None:
                return -1.0
            return entry.expires_at - now

    async def record_failure(
        self, keys: BreakerKeys, policy: FailurePolicy
    ) -> FailureOutcome:
        with self._lock:
            now = _now()
            marker = self._live(keys.open, now)
            if marker is not None:
                if policy.now_ms >= _half_open_at(marker.value):
                    self._write_marker(keys, policy, now)
                    return FailureOutcome(0, FailureResult.REOPENED)
                return FailureOutcome(0, FailureResult.ALREADY_OPEN)

            fails = self._increment(keys.fails, now)
            counter = self._entries[keys.fails]
            if counter.expires_at is None:
                counter.expires_at = now + policy.fail_window_ms / 1000

            if fails >= policy.threshold:
                self._write_marker(keys, policy, now)
                return FailureOutcome(0, FailureResult.OPENED)
            return FailureOutcome(fails, FailureResult.COUNTED)

    async def ping(self) -> bool:
        return True
