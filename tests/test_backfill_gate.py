from __future__ import annotations

from decimal import Decimal

import pytest

from core.domain.entities.candle_entity import CandleEntity
from core.services.backfill_coordinator_service import BackfillCoordinator, BackfillKeys
from core.services.backfill_gate_service import DAY_MS, BackfillGate
from tests.fakes import FailingStore, InMemoryCandleRepository, InMemoryKeyValueStore, utc_ms

NOW_MS = utc_ms(15, 0)


class Clock:
    def __init__(self, now_ms: int) -> None:
        self.now = now_ms / 1000

    def __call__(self) -> float:
        return self.now


def candle(timeframe: str, open_time: int) -> CandleEntity:
    return CandleEntity(
        asset_id=1,
        timeframe=timeframe,
        open_time=open_time,
        close_time=open_time + 59_999,
        open=Decimal("1"),
        high=Decimal("1"),
        low=Decimal("1"),
        close=Decimal("1"),
        volume=Decimal("1"),
    )


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def repo():
    return InMemoryCandleRepository()


@pytest.fixture
def clock():
    return Clock(NOW_MS)


@pytest.fixture
def gate(kv, repo, clock):
    return BackfillGate(coordinator=BackfillCoordinator(store=kv), candle_repository=repo, clock=clock)


def seed_history(repo: InMemoryCandleRepository, *, minute_days_back: float, tf_days_back: float) -> None:
    start_of_today = (NOW_MS // DAY_MS) * DAY_MS
    repo.rows[(1, "1m", NOW_MS - int(minute_days_back * DAY_MS))] = candle("1m", NOW_MS - int(minute_days_back * DAY_MS))
    t = start_of_today - int(tf_days_back * DAY_MS)
    repo.rows[(1, "5m", t)] = candle("5m", t)


async def test_running_backfill_denies_even_when_complete(gate, kv):
    kv.data[BackfillKeys.running(1)] = "1"
    kv.data[BackfillKeys.complete(1)] = "1"
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_complete_marker_approves_without_history(gate, kv):
    kv.data[BackfillKeys.complete(1)] = "1"
    assert await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_heuristic_approves_established_history(gate, repo):
    seed_history(repo, minute_days_back=5, tf_days_back=2)
    assert await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_heuristic_denies_short_minute_history(gate, repo):
    seed_history(repo, minute_days_back=3, tf_days_back=2)
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_heuristic_denies_when_timeframe_has_only_recent_rows(gate, repo):
    seed_history(repo, minute_days_back=5, tf_days_back=0.5)
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_no_history_denies(gate):
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_heuristic_is_memoised_but_markers_are_not(gate, repo, kv, clock):
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)
    seed_history(repo, minute_days_back=5, tf_days_back=2)
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)

    kv.data[BackfillKeys.complete(1)] = "1"
    assert await gate.is_approved_to_write(1, "5m", NOW_MS)
    del kv.data[BackfillKeys.complete(1)]

    clock.now += 31
    assert await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_forget_drops_memo(gate, repo):
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)
    seed_history(repo, minute_days_back=5, tf_days_back=2)
    gate.forget(1)
    assert await gate.is_approved_to_write(1, "5m", NOW_MS)


async def test_unreadable_markers_deny(repo, clock):
    seed_history(repo, minute_days_back=5, tf_days_back=2)
    gate = BackfillGate(coordinator=BackfillCoordinator(store=FailingStore()), candle_repository=repo, clock=clock)
    assert not await gate.is_approved_to_write(1, "5m", NOW_MS)
