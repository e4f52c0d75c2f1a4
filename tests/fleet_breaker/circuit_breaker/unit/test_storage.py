from __future__ import annotations

import pytest

from fleet_breaker.circuit_breaker import (
    BreakerKeys,
    FailureOutcome,
    FailurePolicy,
    FailureResult,
    InMemoryBreakerStore,
)
from tests.fleet_breaker.support.breaker_fakes import FakeClock

pytestmark = pytest.mark.asyncio

_KEYS = BreakerKeys.build("cb:", "svc")


def _policy(clock: FakeClock, threshold: int = 3) -> FailurePolicy:
    return FailurePolicy(
        threshold=threshold,
        fail_window_ms=10_000,
        open_cooldown_ms=30_000,
        marker_ttl_ms=35_000,
        now_ms=int(clock.now() * 1000),
    )


async def test_set_get_and_expiry(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    assert await store.set("k", "v", ttl=2.0) is True
    assert await store.get("k") == "v"

    clock.advance(2.0)

    assert await store.get("k") is None


async def test_set_only_if_absent_respects_live_keys(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    assert await store.set("lease", "a", ttl=5.0, only_if_absent=True) is True
    assert await store.set("lease", "b", ttl=5.0, only_if_absent=True) is False
    assert await store.get("lease") == "a"

    clock.advance(5.0)

    assert await store.set("lease", "c", ttl=5.0, only_if_absent=True) is True


async def test_increment_creates_at_one_without_expiry(
    store: InMemoryBreakerStore,
) -> None:
    assert await store.increment("n") == 1
    assert await store.increment("n") == 2
    assert await store.ttl("n") == -1.0


async def test_ttl_reports_remaining_and_missing(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    await store.set("k", "v", ttl=10.0)
    clock.advance(4.0)

    assert await store.ttl("k") == pytest.approx(6.0)
    assert await store.ttl("missing") == -2.0


async def test_delete_counts_only_live_keys(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    await store.set("a", "1", ttl=1.0)
    await store.set("b", "1", ttl=10.0)
    clock.advance(1.0)

    assert await store.delete("a", "b", "c") == 1
    assert await store.delete() == 0


async def test_record_failure_counts_with_window(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    outcome = await store.record_failure(_KEYS, _policy(clock))

    assert outcome == FailureOutcome(1, FailureResult.COUNTED)
    assert await store.ttl(_KEYS.fails) == pytest.approx(10.0)

    clock.advance(4.0)
    await store.record_failure(_KEYS, _policy(clock))

    assert await store.ttl(_KEYS.fails) == pytest.approx(6.0)


async def test_record_failure_opens_at_threshold(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    await store.record_failure(_KEYS, _policy(clock))
    await store.record_failure(_KEYS, _policy(clock))

    outcome = await store.record_failure(_KEYS, _policy(clock))

    assert outcome == FailureOutcome(0, FailureResult.OPENED)
    assert await store.get(_KEYS.fails) is None
    assert await store.get(_KEYS.open) == str(int(clock.now() * 1000) + 30_000)
    assert await store.ttl(_KEYS.open) == pytest.approx(35.0)


async def test_record_failure_while_open_is_not_counted(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    await store.record_failure(_KEYS, _policy(clock, threshold=1))

    outcome = await store.record_failure(_KEYS, _policy(clock, threshold=1))

    assert outcome == FailureOutcome(0, FailureResult.ALREADY_OPEN)
    assert await store.get(_KEYS.fails) is None


async def test_record_failure_after_cooldown_reopens(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    await store.record_failure(_KEYS, _policy(clock, threshold=1))
    clock.advance(30.0)
    await store.set(_KEYS.half, "probe", ttl=5.0)

    outcome = await store.record_failure(_KEYS, _policy(clock, threshold=1))

    assert outcome == FailureOutcome(0, FailureResult.REOPENED)
    assert await store.get(_KEYS.half) is None
    assert await store.get(_KEYS.open) == str(int(clock.now() * 1000) + 30_000)


async def test_record_failure_reopens_over_unreadable_marker(
    store: InMemoryBreakerStore, clock: FakeClock
) -> None:
    await store.set(_KEYS.open, "garbage", ttl=30.0)

    outcome = await store.record_failure(_KEYS, _policy(clock))

    assert outcome.result == FailureResult.REOPENED


async def test_ping(store: InMemoryBreakerStore) -> None:
    assert await store.ping() is True
