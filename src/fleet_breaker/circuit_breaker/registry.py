"""Per-process breaker registry."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence

from fleet_breaker.circuit_breaker.breaker import BreakerConfig, CircuitBreaker
from fleet_breaker.circuit_breaker.metrics import BreakerListener
from fleet_breaker.circuit_breaker.storage import AbstractBreakerStore
from fleet_breaker.logging import StructuredLogger

BreakerFactory = Callable[[str], CircuitBreaker]


class BreakerRegistry:
    """Hand out exactly one ``CircuitBreaker`` per operation name.

    Create one registry at service composition time and inject it wherever
    gates are built. Entries are never removed while the registry lives.
    """

    def __init__(self, factory: BreakerFactory | None = None) -> None:
        """Create an empty registry.

        Args:
            factory: Default factory used when ``get_or_create`` is called
                without one.
        """
        self._factory = factory
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @classmethod
    def for_store(
        cls,
        store: AbstractBreakerStore,
        *,
        config: BreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | None = None,
    ) -> BreakerRegistry:
        """Build a registry whose breakers share one store and config."""

        def _factory(name: str) -> CircuitBreaker:
            return CircuitBreaker(
                name,
                store=store,
                config=config,
                listeners=listeners,
                logger=logger,
            )

        return cls(_factory)

    def get_or_create(
        self, name: str, factory: BreakerFactory | None = None
    ) -> CircuitBreaker:
        """Return the breaker for ``name``, constructing it at most once.

        Raises:
            ValueError: If the breaker does not exist and no factory was given
                here or at registry construction.
        """
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker

        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is not None:
                return breaker
            resolved = factory if factory is not None else self._factory
            if resolved is None:
                raise ValueError(f"no breaker factory configured for {name!r}")
            breaker = resolved(name)
            self._breakers[name] = breaker
            return breaker

