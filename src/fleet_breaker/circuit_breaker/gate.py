"""Gate wrapper composing a registry breaker with a protected call."""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import structlog

from fleet_breaker.circuit_breaker.registry import BreakerRegistry

T = TypeVar("T")
P = ParamSpec("P")


class Gate:
    """Run async operations under the breaker registered for their name."""

    def __init__(
        self,
        registry: BreakerRegistry,
        *,
        excluded_exceptions: tuple[type[BaseException], ...] = (),
    ) -> None:
        """Create a gate over an injected registry.

        Args:
            registry: Registry resolving operation names to breakers.
            excluded_exceptions: Exceptions that propagate without counting
                as failures, for example client-side validation errors.
        """
        self._registry = registry
        self._excluded_exceptions = excluded_exceptions

    async def call(
        self,
        name: str,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            name: Protected operation name.
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the breaker rejects the call. ``func`` is
                not invoked.
            BaseException: Whatever ``func`` raised, unchanged, after the
                failure has been recorded. Task cancellation and excluded
                exceptions are not recorded.
        """
        breaker = self._registry.get_or_create(name)
        with structlog.contextvars.bound_contextvars(circuit_breaker=name):
            await breaker.allow()
            try:
                result = await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except self._excluded_exceptions:
                raise
            except BaseException:
                await breaker.on_failure()
                raise
            await breaker.on_success()
            return result

    def protect(
        self, name: str
    ) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
        """Decorate an async callable so every call goes through ``call``."""

        def _decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
            @functools.wraps(func)
            async def _wrapped(*args: P.args, **kwargs: P.kwargs) -> T:
                return await self.call(name, func, *args, **kwargs)

            return _wrapped

        return _decorator
