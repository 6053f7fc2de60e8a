from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from adapters.entry.http.stream_router import router as stream_router
from core.domain.entities.feed_event_entity import AuthError, AuthOk, SubscriptionAck, TradeEvent, UnknownEvent
from core.services.asset_cache_service import AssetCache
from core.services.backfill_coordinator_service import BackfillCoordinator
from core.services.backfill_gate_service import BackfillGate
from core.services.candle_store_service import CandleStoreService
from core.services.rollup_accumulator import RollupAccumulator
from core.services.tick_buffer import TickBuffer
from core.services.trading_hours_service import TradingHoursService
from core.usecases.aggregate_ticks_use_case import AggregateTicksUseCase
from core.usecases.drain_tick_buffer_use_case import DrainTickBufferUseCase
from core.usecases.live_candle_stream_use_case import LiveCandleStreamUseCase
from core.usecases.manage_subscriptions_use_case import ManageSubscriptionsUseCase
from core.usecases.process_tick_batch_use_case import ProcessTickBatchUseCase
from tests.fakes import (
    FakeAssetRepository,
    FakeFeed,
    InMemoryCandleRepository,
    InMemoryKeyValueStore,
    asset,
    utc_ms,
)


@pytest.fixture
def stream():
    repo = InMemoryCandleRepository()
    store = CandleStoreService(candle_repository=repo)
    coordinator = BackfillCoordinator(store=InMemoryKeyValueStore())
    rollup = RollupAccumulator(
        timeframes=["5m"],
        candle_store=store,
        backfill_gate=BackfillGate(coordinator=coordinator, candle_repository=repo),
    )
    cache = AssetCache()
    buf = TickBuffer(max_size=100)
    feed = FakeFeed()
    subscriptions = ManageSubscriptionsUseCase(
        feed=feed,
        asset_repository=FakeAssetRepository([asset(1, "AAPL")], watchlist={"AAPL"}),
        asset_cache=cache,
        rollup=rollup,
        backfill_coordinator=coordinator,
        candle_store=store,
    )
    process = ProcessTickBatchUseCase(
        asset_cache=cache,
        aggregator=AggregateTicksUseCase(trading_hours=TradingHoursService()),
        rollup=rollup,
        candle_store=store,
    )
    drain = DrainTickBufferUseCase(tick_buffer=buf, process_batch_uc=process, idle_sleep_s=0.01)
    return LiveCandleStreamUseCase(
        feed=feed,
        tick_buffer=buf,
        asset_cache=cache,
        rollup=rollup,
        subscriptions=subscriptions,
        drain=drain,
    )


def trade() -> TradeEvent:
    return TradeEvent(symbol="AAPL", price=Decimal("150"), size=Decimal("1"), trade_time=utc_ms(14, 30, 5))


async def test_feed_handlers_are_wired(stream):
    assert stream._feed.on_event == stream.on_event
    assert stream._feed.on_disconnect == stream.on_disconnect


async def test_auth_wakes_subscriptions_and_trades_are_buffered(stream):
    await stream.on_event(AuthOk(message="authenticated"))
    assert stream._feed.commands == []
    assert stream._subscriptions._wake.is_set()

    await stream._subscriptions.reconcile()
    assert stream._feed.commands == [("subscribe", ["AAPL"])]

    await stream.on_event(trade())
    await stream.on_event(SubscriptionAck(trades=["AAPL"]))
    await stream.on_event(AuthError(code=402, message="auth failed"))
    await stream.on_event(UnknownEvent(raw={"T": "q"}))

    status = stream.status()
    assert status.subscribed_count == 1
    assert status.cached_assets == 1
    assert status.buffer_depth == 1
    assert status.last_batch_size is None


async def test_disconnect_clears_subscriptions(stream):
    await stream._subscriptions.reconcile()
    assert stream.status().subscribed_count == 1
    await stream.on_disconnect()
    assert stream.status().subscribed_count == 0


async def test_start_and_stop(stream):
    stream.start()
    assert stream.running
    await stream._subscriptions.reconcile()
    await stream.on_event(trade())
    await stream._drain.drain_once()
    await stream.stop()

    status = stream.status()
    assert not stream.running
    assert status.batches_processed >= 1
    assert status.last_batch_size == 1
    assert status.open_buckets == 1


async def test_auth_runs_reconcile_without_waiting_for_interval(stream):
    stream._feed.authenticated = False
    stream.start()
    await asyncio.sleep(0.05)
    assert stream._feed.commands == []

    stream._feed.authenticated = True
    await stream.on_event(AuthOk(message="authenticated"))
    for _ in range(100):
        if stream._feed.commands:
            break
        await asyncio.sleep(0.01)
    await stream.stop()

    assert stream._feed.commands == [("subscribe", ["AAPL"])]


def test_status_endpoint(stream):
    app = FastAPI()
    app.include_router(stream_router)
    client = TestClient(app)

    assert client.get("/stream/status").status_code == 503

    app.state.stream = stream
    stream._running = True
    resp = client.get("/stream/status")
    assert resp.status_code == 200
    body = resp.json()
    assert body["running"] is True
    assert body["feed_url"] == "wss://example.invalid/v2/iex"
    assert body["connected"] is True
