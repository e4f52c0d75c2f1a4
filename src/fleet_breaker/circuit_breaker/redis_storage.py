"""Redis-backed shared state store.

Every process of a horizontally-scaled service points its breakers at the same
Redis instance. Failure recording runs as a server-side Lua script so the
increment, threshold check and open transition happen in one step.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from fleet_breaker.circuit_breaker.exceptions import StoreUnavailableError
from fleet_breaker.circuit_breaker.state import (
    BreakerKeys,
    FailureOutcome,
    FailurePolicy,
    FailureResult,
)
from fleet_breaker.circuit_breaker.storage import AbstractBreakerStore
from fleet_breaker.settings import RedisSettings

T = TypeVar("T")

RECORD_FAILURE_SCRIPT = """
local open_key  = KEYS[1]
local fails_key = KEYS[2]
local half_key  = KEYS[3]

local threshold      = tonumber(ARGV[1])
local fail_window_ms = tonumber(ARGV[2])
local marker_ttl_ms  = tonumber(ARGV[3])
local now_ms         = tonumber(ARGV[4])
local half_open_at   = ARGV[5]

local marker = redis.call("GET", open_key)
if marker then
  local marker_at = tonumber(marker)
  if marker_at == nil or now_ms >= marker_at then
    redis.call("SET", open_key, half_open_at, "PX", marker_ttl_ms)
    redis.call("DEL", fails_key, half_key)
    return {0, "reopened"}
  end
  return {0, "already_open"}
end

local fails = redis.call("INCR", fails_key)
if redis.call("PTTL", fails_key) < 0 then
  redis.call("PEXPIRE", fails_key, fail_window_ms)
end

if fails >= threshold then
  redis.call("SET", open_key, half_open_at, "PX", marker_ttl_ms)
  redis.call("DEL", fails_key, half_key)
  return {0, "opened"}
end

return {fails, "counted"}
"""


def build_redis_client(settings: RedisSettings) -> Redis:
    """Build an asyncio Redis client from settings."""
    return Redis.from_url(
        settings.url,
        decode_responses=True,
        socket_timeout=settings.socket_timeout_seconds,
        socket_connect_timeout=settings.socket_connect_timeout_seconds,
        max_connections=settings.max_connections,
    )


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


class RedisBreakerStore(AbstractBreakerStore):
    """Shared breaker store backed by ``redis.asyncio``."""

    def __init__(self, client: Redis) -> None:
        """Wrap an existing client.

        Args:
            client: Asyncio Redis client. Its socket timeouts bound every
                store round-trip.
        """
        self._client = client
        self._record_failure = client.register_script(RECORD_FAILURE_SCRIPT)

    @staticmethod
    async def _run(operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(
                operation, f"{exc.__class__.__name__}: {exc}"
            ) from exc

    async def get(self, key: str) -> str | None:
        value = await self._run("get", lambda: self._client.get(key))
        return None if value is None else _decode(value)

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl: float,
        only_if_absent: bool = False,
    ) -> bool:
        result = await self._run(
            "set",
            lambda: self._client.set(
                key, value, px=max(int(ttl * 1000), 1), nx=only_if_absent
            ),
        )
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._run("delete", lambda: self._client.delete(*keys)))

    async def increment(self, key: str) -> int:
        return int(await self._run("increment", lambda: self._client.incr(key)))

    async def ttl(self, key: str) -> float:
        remaining_ms = await self._run("ttl", lambda: self._client.pttl(key))
        remaining = int(remaining_ms)
        if remaining < 0:
            return float(remaining)
        return remaining / 1000

    async def record_failure(
        self, keys: BreakerKeys, policy: FailurePolicy
    ) -> FailureOutcome:
        raw = await self._run(
            "record_failure",
            lambda: self._record_failure(
                keys=[keys.open, keys.fails, keys.half],
                args=[
                    policy.threshold,
                    policy.fail_window_ms,
                    policy.marker_ttl_ms,
                    policy.now_ms,
                    policy.half_open_at_ms,
                ],
            ),
        )
        count, result = raw
        return FailureOutcome(int(count), FailureResult(_decode(result)))

    async def ping(self) -> bool:
        return bool(await self._run("ping", lambda: self._client.ping()))
