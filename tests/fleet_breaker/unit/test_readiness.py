from __future__ import annotations

import pytest

from fleet_breaker.circuit_breaker import InMemoryBreakerStore
from fleet_breaker.readiness import (
    REASON_CHECK_FAILED,
    REASON_READY,
    REASON_STORE_UNREACHABLE,
    CheckResult,
    evaluate_readiness_once,
    make_store_check,
)
from tests.fleet_breaker.support.breaker_fakes import HangingStore, UnreachableStore

pytestmark = pytest.mark.asyncio


class _FalsePingStore(InMemoryBreakerStore):
    async def ping(self) -> bool:
        return False


async def test_store_check_reports_reachable_store() -> None:
    check = make_store_check(store=InMemoryBreakerStore())

    result = await check()

    assert result.ok is True
    assert result.name == "breaker_store"
    assert "latency_ms" in result.data


async def test_store_check_reports_unreachable_store() -> None:
    check = make_store_check(store=UnreachableStore(), name="redis")

    result = await check()

    assert result.ok is False
    assert result.name == "redis"
    assert result.reason == REASON_STORE_UNREACHABLE
    assert "connection refused" in result.detail


async def test_store_check_times_out_hanging_ping() -> None:
    check = make_store_check(store=HangingStore(), timeout_seconds=0.01)

    result = await check()

    assert result.ok is False
    assert result.reason == REASON_STORE_UNREACHABLE
    assert result.detail == "ping_timeout_seconds=0.01"


async def test_store_check_reports_false_ping() -> None:
    result = await make_store_check(store=_FalsePingStore())()

    assert result.ok is False
    assert result.detail == "ping returned false"


async def test_check_result_data_is_read_only() -> None:
    result = CheckResult(name="x", ok=True, data={"a": 1})

    with pytest.raises(TypeError):
        result.data["a"] = 2  # type: ignore[index]


async def test_evaluate_readiness_once_all_ok() -> None:
    snapshot = await evaluate_readiness_once(
        checks=[make_store_check(store=InMemoryBreakerStore())],
        now_fn=lambda: 42.0,
    )

    assert snapshot.ready is True
    assert snapshot.status == "ok"
    assert snapshot.reason == REASON_READY
    assert snapshot.last_checked_at == 42.0


async def test_evaluate_readiness_once_reports_first_failure() -> None:
    snapshot = await evaluate_readiness_once(
        checks=[
            make_store_check(store=InMemoryBreakerStore(), name="primary"),
            make_store_check(store=UnreachableStore(), name="secondary"),
        ],
    )

    assert snapshot.ready is False
    assert snapshot.status == "degraded"
    assert snapshot.reason == REASON_STORE_UNREACHABLE
    assert [result.name for result in snapshot.check_results] == [
        "primary",
        "secondary",
    ]


async def test_evaluate_readiness_once_records_raising_check() -> None:
    async def exploding_check() -> CheckResult:
        raise RuntimeError("boom")

    snapshot = await evaluate_readiness_once(checks=[exploding_check])

    assert snapshot.ready is False
    assert snapshot.reason == REASON_CHECK_FAILED
    assert snapshot.check_results[0].name == "exploding_check"
    assert snapshot.detail == "RuntimeError: boom"
