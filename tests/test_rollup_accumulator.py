from __future__ import annotations

from decimal import Decimal

import pytest

from core.domain.entities.ohlcv_entity import OHLCV
from core.services.backfill_coordinator_service import BackfillCoordinator, BackfillKeys
from core.services.backfill_gate_service import BackfillGate
from core.services.candle_store_service import CandleStoreService
from core.services.rollup_accumulator import BucketState, RollupAccumulator
from tests.fakes import InMemoryCandleRepository, InMemoryKeyValueStore, utc_ms


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def bar(o, h, l, c, v) -> OHLCV:
    return OHLCV(Decimal(o), Decimal(h), Decimal(l), Decimal(c), Decimal(v))


@pytest.fixture
def kv():
    store = InMemoryKeyValueStore()
    store.data[BackfillKeys.complete(1)] = "1"
    return store


@pytest.fixture
def repo():
    return InMemoryCandleRepository()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def rollup(kv, repo, clock):
    gate = BackfillGate(coordinator=BackfillCoordinator(store=kv), candle_repository=repo)
    return RollupAccumulator(
        timeframes=["5m", "15m"],
        candle_store=CandleStoreService(candle_repository=repo),
        backfill_gate=gate,
        open_flush_interval_s=1.0,
        clock=clock,
    )


async def test_bucket_closes_and_is_evicted_when_next_bucket_starts(rollup, repo):
    rollup.rollup({(1, utc_ms(14, 30)): bar("150", "151", "149.5", "149.5", "35")})
    rollup.rollup({(1, utc_ms(14, 31)): bar("149.5", "150", "149", "149.8", "5")})
    assert await rollup.flush_closed(utc_ms(14, 31)) == 0
    assert rollup.state(1, "5m", utc_ms(14, 30)) is BucketState.OPEN

    rollup.rollup({(1, utc_ms(14, 35)): bar("152", "152", "152", "152", "1")})
    assert await rollup.flush_closed(utc_ms(14, 35)) == 1

    row = repo.get(1, "5m", utc_ms(14, 30))
    assert (row.open, row.high, row.low, row.close, row.volume) == (
        Decimal("150"),
        Decimal("151"),
        Decimal("149"),
        Decimal("149.8"),
        Decimal("40"),
    )
    assert row.close_time == utc_ms(14, 35) - 1
    assert rollup.state(1, "5m", utc_ms(14, 30)) is BucketState.CLOSED
    assert rollup.get(1, "5m", utc_ms(14, 30)) is None
    assert rollup.state(1, "5m", utc_ms(14, 35)) is BucketState.OPEN
    # the 15m bucket is still open
    assert rollup.state(1, "15m", utc_ms(14, 30)) is BucketState.OPEN


async def test_late_minute_for_closed_bucket_is_ignored(rollup, repo):
    rollup.rollup({(1, utc_ms(14, 30)): bar("150", "151", "149.5", "149.5", "35")})
    rollup.rollup({(1, utc_ms(14, 35)): bar("152", "152", "152", "152", "1")})
    await rollup.flush_closed(utc_ms(14, 35))

    touched = rollup.rollup({(1, utc_ms(14, 33)): bar("100", "200", "50", "120", "999")})

    assert (1, utc_ms(14, 30)) not in touched["5m"]
    assert rollup.state(1, "5m", utc_ms(14, 30)) is BucketState.CLOSED
    assert rollup.get(1, "5m", utc_ms(14, 30)) is None
    assert repo.get(1, "5m", utc_ms(14, 30)).high == Decimal("151")
    # a still-open longer bucket accepts the same minute
    assert (1, utc_ms(14, 30)) in touched["15m"]


async def test_open_bucket_writes_are_throttled(rollup, repo, clock):
    touched = rollup.rollup({(1, utc_ms(14, 30)): bar("150", "151", "149.5", "149.5", "35")})
    assert await rollup.persist_open(touched, utc_ms(14, 30)) == 2

    touched = rollup.rollup({(1, utc_ms(14, 31)): bar("149.5", "153", "149", "153", "5")})
    assert await rollup.persist_open(touched, utc_ms(14, 31)) == 0

    clock.now += 1.0
    assert await rollup.persist_open(touched, utc_ms(14, 31)) == 2
    row = repo.get(1, "5m", utc_ms(14, 30))
    assert row.high == Decimal("153")
    assert row.volume == Decimal("40")
    assert all(mode == "snapshot" for _, mode, _ in repo.writes)


async def test_failed_open_write_is_retried_without_waiting(rollup, repo):
    touched = rollup.rollup({(1, utc_ms(14, 30)): bar("150", "151", "149.5", "149.5", "35")})
    repo.fail_timeframes.add("5m")
    assert await rollup.persist_open(touched, utc_ms(14, 30)) == 1  # only 15m landed

    repo.fail_timeframes.clear()
    assert await rollup.persist_open(touched, utc_ms(14, 30)) == 1  # 5m retried, 15m throttled
    assert repo.get(1, "5m", utc_ms(14, 30)) is not None


async def test_gate_denial_evicts_without_write(rollup, repo, kv):
    kv.data[BackfillKeys.running(1)] = "1"
    touched = rollup.rollup({(1, utc_ms(14, 30)): bar("150", "151", "149.5", "149.5", "35")})
    assert await rollup.persist_open(touched, utc_ms(14, 30)) == 0

    rollup.rollup({(1, utc_ms(14, 45)): bar("152", "152", "152", "152", "1")})
    assert await rollup.flush_closed(utc_ms(14, 45)) == 0
    assert repo.count("5m") == 0
    assert repo.count("15m") == 0
    assert rollup.state(1, "5m", utc_ms(14, 30)) is BucketState.CLOSED


async def test_queued_reset_is_applied_by_owner(rollup):
    rollup.rollup(
        {
            (1, utc_ms(14, 30)): bar("150", "151", "149.5", "149.5", "35"),
            (2, utc_ms(14, 30)): bar("10", "11", "9", "10", "3"),
        }
    )
    assert rollup.open_count() == 4

    rollup.request_reset(1)
    assert rollup.open_count() == 4
    assert rollup.apply_pending_resets() == {1}
    assert rollup.open_count() == 2
    assert rollup.get(2, "5m", utc_ms(14, 30)) is not None
    assert rollup.apply_pending_resets() == set()
