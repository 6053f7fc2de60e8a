from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import List

from adapters.external.feed.feed_websocket_client import FeedWebsocketClient
from core.domain.entities.feed_event_entity import (
    AuthError,
    AuthOk,
    FeedError,
    FeedEvent,
    SubscriptionAck,
    TradeEvent,
)
from core.domain.entities.stream_status_entity import StreamStatusEntity
from core.services.asset_cache_service import AssetCache
from core.services.rollup_accumulator import RollupAccumulator
from core.services.tick_buffer import TickBuffer
from core.usecases.drain_tick_buffer_use_case import DrainTickBufferUseCase
from core.usecases.manage_subscriptions_use_case import ManageSubscriptionsUseCase


class LiveCandleStreamUseCase:
    """
    Runs the live trade stream end to end.

    Four concurrent tasks share the process:
      - feed:         websocket session, reconnects forever
      - watchdog:     restarts the socket when auth hangs
      - subscriptions: periodic watchlist reconcile, woken early on auth
      - drain:        buffer -> 1m candles -> higher-timeframe roll-ups

    The receive path only enqueues trades; all aggregation happens on the drain task.
    """

    def __init__(
        self,
        *,
        feed: FeedWebsocketClient,
        tick_buffer: TickBuffer,
        asset_cache: AssetCache,
        rollup: RollupAccumulator,
        subscriptions: ManageSubscriptionsUseCase,
        drain: DrainTickBufferUseCase,
        logger: logging.Logger | None = None,
    ) -> None:
        self._feed = feed
        self._buffer = tick_buffer
        self._assets = asset_cache
        self._rollup = rollup
        self._subscriptions = subscriptions
        self._drain = drain
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._tasks: List[asyncio.Task] = []
        self._running = False

        self._feed.set_handlers(on_event=self.on_event, on_disconnect=self.on_disconnect)

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start every loop in background."""
        if self._running:
            return
        self._logger.info("Starting live candle stream url=%s", self._feed.url)
        self._running = True
        self._drain.start()
        self._subscriptions.start()
        self._tasks = [
            asyncio.create_task(self._feed.run_forever()),
            asyncio.create_task(self._feed.watch_auth_timeout()),
        ]

    async def stop(self) -> None:
        """
        Stop the feed first so nothing new is buffered, then the reconcile and drain loops.
        """
        if not self._running:
            return
        self._running = False
        with contextlib.suppress(Exception):
            await self._feed.stop()
        for task in self._tasks:
            with contextlib.suppress(Exception):
                await task
        self._tasks = []
        with contextlib.suppress(Exception):
            await self._subscriptions.stop()
        with contextlib.suppress(Exception):
            await self._drain.stop()
        self._logger.info("Live candle stream stopped (dropped_ticks=%s)", self._buffer.dropped)

    async def on_event(self, event: FeedEvent) -> None:
        if isinstance(event, TradeEvent):
            self._buffer.put(event)
        elif isinstance(event, AuthOk):
            self._subscriptions.wake()
        elif isinstance(event, AuthError):
            self._logger.error("Feed rejected credentials (code=%s): %s", event.code, event.message)
        elif isinstance(event, FeedError):
            self._logger.error("Feed error (code=%s): %s", event.code, event.message)
        elif isinstance(event, SubscriptionAck):
            self._logger.info("Subscribed trades: %d symbols", len(event.trades))
        else:
            self._logger.debug("Unhandled feed message: %s", event)

    async def on_disconnect(self) -> None:
        self._subscriptions.reset_session()

    def status(self) -> StreamStatusEntity:
        last = self._drain.last_batch
        return StreamStatusEntity(
            running=self._running,
            feed_url=self._feed.url,
            connected=self._feed.connected,
            authenticated=self._feed.authenticated,
            reconnects=self._feed.reconnects,
            subscribed_count=len(self._subscriptions.subscribed),
            cached_assets=len(self._assets),
            buffer_depth=self._buffer.qsize(),
            dropped_ticks=self._buffer.dropped,
            batches_processed=self._drain.batches_processed,
            last_batch_size=last.ticks if last is not None else None,
            last_minute_ts=last.latest_minute_ts if last is not None else None,
            open_buckets=self._rollup.open_count(),
        )
