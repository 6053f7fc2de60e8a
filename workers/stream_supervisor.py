from __future__ import annotations

import contextlib
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from adapters.external.backfill.backfill_http_client import BackfillHttpClient
from adapters.external.cache.redis_key_value_store import RedisKeyValueStore
from adapters.external.database.asset_repository_mongodb import AssetRepositoryMongoDB
from adapters.external.database.candle_repository_mongodb import CandleRepositoryMongoDB
from adapters.external.database.mongodb_client import get_mongo_client
from adapters.external.feed.feed_websocket_client import FeedWebsocketClient
from config.settings import settings
from core.services.asset_cache_service import AssetCache
from core.services.backfill_coordinator_service import BackfillCoordinator
from core.services.backfill_gate_service import BackfillGate
from core.services.candle_cache_service import CandleCacheService
from core.services.candle_store_service import CandleStoreService
from core.services.rollup_accumulator import RollupAccumulator
from core.services.tick_buffer import TickBuffer
from core.services.timeframe_service import TimeframeService
from core.services.trading_hours_service import TradingHoursService
from core.usecases.aggregate_ticks_use_case import AggregateTicksUseCase
from core.usecases.drain_tick_buffer_use_case import DrainTickBufferUseCase
from core.usecases.live_candle_stream_use_case import LiveCandleStreamUseCase
from core.usecases.manage_subscriptions_use_case import ManageSubscriptionsUseCase
from core.usecases.process_tick_batch_use_case import ProcessTickBatchUseCase


class StreamSupervisor:
    """
    High-level supervisor for api-live-candles.

    Responsibilities:
    - Connect to MongoDB and Redis and ensure indexes.
    - Wire the feed, buffer, aggregation, roll-up and backfill gate.
    - Start/stop the live candle stream.
    """

    def __init__(self, *, sandbox: Optional[bool] = None, account: Optional[str] = None) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._sandbox = sandbox
        self._account = account

        self._mongo_client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None
        self._kv: RedisKeyValueStore | None = None
        self._stream: LiveCandleStreamUseCase | None = None

    @property
    def db(self) -> AsyncIOMotorDatabase | None:
        """
        Expose the database handle after start().
        """
        return self._db

    @property
    def stream(self) -> LiveCandleStreamUseCase | None:
        return self._stream

    async def start(self) -> None:
        """
        Initialize storage, build the pipeline and start the stream.
        """
        self._mongo_client = get_mongo_client()
        self._db = self._mongo_client[settings.MONGODB_DB_NAME]

        candle_repo = CandleRepositoryMongoDB(self._db)
        asset_repo = AssetRepositoryMongoDB(self._db)
        await candle_repo.ensure_indexes()
        await asset_repo.ensure_indexes()

        self._kv = RedisKeyValueStore.from_url(settings.REDIS_URL)

        rollup_tfs = settings.ROLLUP_TIMEFRAMES
        candle_cache = CandleCacheService(store=self._kv, timeframes=TimeframeService.all_timeframes(rollup_tfs))
        candle_store = CandleStoreService(candle_repository=candle_repo, candle_cache=candle_cache)

        coordinator = BackfillCoordinator(
            store=self._kv,
            dispatcher=BackfillHttpClient(base_url=settings.BACKFILL_BASE_URL),
            queued_ttl_s=settings.BACKFILL_QUEUED_TTL_S,
        )
        gate = BackfillGate(
            coordinator=coordinator,
            candle_repository=candle_repo,
            min_history_days=settings.BACKFILL_MIN_HISTORY_DAYS,
            recent_days=settings.BACKFILL_RECENT_DAYS,
            heuristic_ttl_s=settings.BACKFILL_HEURISTIC_TTL_S,
        )
        rollup = RollupAccumulator(
            timeframes=rollup_tfs,
            candle_store=candle_store,
            backfill_gate=gate,
            open_flush_interval_s=settings.OPEN_BUCKET_FLUSH_INTERVAL_S,
        )

        key, secret = settings.feed_credentials(self._account)
        if not key or not secret:
            self._logger.error("No feed credentials configured (account=%s). Aborting start().", self._account)
            return

        feed = FeedWebsocketClient(
            url=settings.feed_url(self._sandbox),
            api_key=key,
            api_secret=secret,
            ping_interval_s=settings.FEED_PING_INTERVAL_S,
            ping_timeout_s=settings.FEED_PING_TIMEOUT_S,
            reconnect_delay_s=settings.FEED_RECONNECT_DELAY_S,
            auth_timeout_s=settings.FEED_AUTH_TIMEOUT_S,
        )

        asset_cache = AssetCache()
        tick_buffer = TickBuffer(max_size=settings.TICK_BUFFER_MAX_SIZE)
        trading_hours = TradingHoursService(
            session_bound_classes=settings.SESSION_BOUND_ASSET_CLASSES,
            tz_name=settings.RTH_TIMEZONE,
            session_open=settings.RTH_OPEN,
            session_close=settings.RTH_CLOSE,
        )
        process_uc = ProcessTickBatchUseCase(
            asset_cache=asset_cache,
            aggregator=AggregateTicksUseCase(trading_hours=trading_hours),
            rollup=rollup,
            candle_store=candle_store,
        )
        drain_uc = DrainTickBufferUseCase(
            tick_buffer=tick_buffer,
            process_batch_uc=process_uc,
            max_ticks=settings.DRAIN_MAX_TICKS,
            budget_ms=settings.DRAIN_BUDGET_MS,
            idle_sleep_s=settings.DRAIN_IDLE_SLEEP_S,
        )
        subscriptions_uc = ManageSubscriptionsUseCase(
            feed=feed,
            asset_repository=asset_repo,
            asset_cache=asset_cache,
            rollup=rollup,
            backfill_coordinator=coordinator,
            candle_store=candle_store,
            interval_s=settings.SUBSCRIPTION_RECONCILE_INTERVAL_S,
            stale_threshold_s=settings.STALE_CANDLE_THRESHOLD_S,
        )

        self._stream = LiveCandleStreamUseCase(
            feed=feed,
            tick_buffer=tick_buffer,
            asset_cache=asset_cache,
            rollup=rollup,
            subscriptions=subscriptions_uc,
            drain=drain_uc,
        )
        self._stream.start()
        self._logger.info("Live stream started. rollup_timeframes=%s", rollup.timeframes)

    async def stop(self) -> None:
        """
        Stop the stream and close Redis and MongoDB connections.
        """
        if self._stream is not None:
            with contextlib.suppress(Exception):
                await self._stream.stop()

        if self._kv is not None:
            with contextlib.suppress(Exception):
                await self._kv.close()

        if self._mongo_client:
            self._mongo_client.close()
