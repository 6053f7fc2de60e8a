from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Callable, Optional, Set, Tuple

from adapters.external.feed.feed_websocket_client import FeedWebsocketClient
from core.repositories.asset_repository import AssetRepository
from core.services.asset_cache_service import AssetCache
from core.services.backfill_coordinator_service import BackfillCoordinator
from core.services.candle_store_service import CandleStoreService
from core.services.rollup_accumulator import RollupAccumulator
from core.services.timeframe_service import MINUTE_TIMEFRAME

BACKFILL_SOURCE = "live-stream"


class ManageSubscriptionsUseCase:
    """
    Keeps the feed subscription in line with the active watchlists.

    reconcile() diffs the desired symbol set against what is subscribed:
      - added:   subscribe, resolve assets into the shared cache, request a
                 backfill (deduplicated by the coordinator), queue an accumulator
                 reset and warn when the latest 1m candle is stale
      - removed: unsubscribe, purge the cache entry and queue an accumulator reset

    Symbols that are subscribed but not yet in the asset cache (catalog lookup
    failed or the symbol was missing) stay pending and are retried on every
    reconcile until they resolve.

    A periodic loop calls reconcile() while the session is authenticated;
    wake() runs it immediately.
    """

    def __init__(
        self,
        *,
        feed: FeedWebsocketClient,
        asset_repository: AssetRepository,
        asset_cache: AssetCache,
        rollup: RollupAccumulator,
        backfill_coordinator: BackfillCoordinator,
        candle_store: CandleStoreService,
        interval_s: float = 5.0,
        stale_threshold_s: float = 120.0,
        is_authenticated: Optional[Callable[[], bool]] = None,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._feed = feed
        self._assets_repo = asset_repository
        self._cache = asset_cache
        self._rollup = rollup
        self._backfill = backfill_coordinator
        self._store = candle_store
        self._interval_s = float(interval_s)
        self._stale_threshold_ms = int(float(stale_threshold_s) * 1000)
        self._is_authenticated = is_authenticated or (lambda: bool(feed.authenticated))
        self._clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._subscribed: Set[str] = set()
        self._pending: Set[str] = set()
        self._lock = asyncio.Lock()

        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()
        self._wake = asyncio.Event()

    @property
    def subscribed(self) -> Set[str]:
        return set(self._subscribed)

    @property
    def pending(self) -> Set[str]:
        return set(self._pending)

    def start(self) -> None:
        """Start the reconcile loop in background."""
        if self._task is None:
            self._stop.clear()
            self._wake.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop.set()
        self._wake.set()
        if self._task is not None:
            await self._task
            self._task = None

    def wake(self) -> None:
        """Run the next reconcile now instead of waiting for the interval."""
        self._wake.set()

    def reset_session(self) -> None:
        """
        Forget what was subscribed. A new connection starts with no subscriptions,
        so the next authenticated reconcile subscribes everything again.
        """
        if self._subscribed:
            self._logger.info("Session lost, clearing %d subscribed symbols", len(self._subscribed))
        self._subscribed.clear()
        self._pending.clear()

    async def reconcile(self, desired: Optional[Set[str]] = None) -> Tuple[Set[str], Set[str]]:
        if desired is None:
            desired = await self._assets_repo.list_active_watchlist_symbols()
        desired = {s.strip().upper() for s in desired if s and s.strip()}

        async with self._lock:
            added = desired - self._subscribed
            removed = self._subscribed - desired
            if added or removed:
                self._logger.debug(
                    "Subscription update: desired=%d subscribed=%d added=%s removed=%s",
                    len(desired),
                    len(self._subscribed),
                    sorted(added),
                    sorted(removed),
                )

            if added:
                if await self._feed.send_command("subscribe", sorted(added)):
                    self._subscribed.update(added)
                    self._pending.update(added)
                else:
                    self._logger.warning("Subscribe not sent for %d symbols, will retry", len(added))
                    added = set()

            if removed:
                await self._feed.send_command("unsubscribe", sorted(removed))
                self._subscribed.difference_update(removed)
                self._pending.difference_update(removed)
                self._on_removed(removed)

            if self._pending:
                try:
                    self._pending.difference_update(await self._on_added(set(self._pending)))
                except Exception as exc:
                    self._logger.exception("Asset lookup failed for %d subscribed symbols, will retry: %s", len(self._pending), exc)

        return added, removed

    async def _on_added(self, symbols: Set[str]) -> Set[str]:
        """Resolve subscribed symbols into the cache. Returns the symbols that resolved."""
        assets = await self._assets_repo.get_assets(symbols)
        merged = self._cache.merge(assets)
        self._logger.debug("Updated asset cache with %d symbols: %s", len(merged), merged)

        unresolved = symbols - set(merged)
        if unresolved:
            self._logger.warning("Symbols not found in asset catalog: %s", sorted(unresolved))

        for symbol, asset_id in sorted(merged.items()):
            self._rollup.request_reset(asset_id)
            await self._backfill.request_backfill(asset_id, source=BACKFILL_SOURCE)
            await self._warn_if_stale(symbol, asset_id)
        return set(merged)

    def _on_removed(self, symbols: Set[str]) -> None:
        for symbol in symbols:
            asset_id = self._cache.purge_symbol(symbol)
            if asset_id is not None:
                self._rollup.request_reset(asset_id)

    async def _warn_if_stale(self, symbol: str, asset_id: int) -> None:
        try:
            latest = await self._store.latest_candle(asset_id, MINUTE_TIMEFRAME)
        except Exception as exc:
            self._logger.warning("Could not read latest %s candle for %s: %s", MINUTE_TIMEFRAME, symbol, exc)
            return
        if latest is None:
            return
        age_ms = int(self._clock() * 1000) - int(latest.open_time)
        if age_ms > self._stale_threshold_ms:
            self._logger.warning(
                "Asset %s latest %s candle is %.0fs old; history has a gap until backfill catches up",
                symbol,
                MINUTE_TIMEFRAME,
                age_ms / 1000,
            )

    async def _run(self) -> None:
        self._logger.debug("Subscription loop started")
        while not self._stop.is_set():
            self._wake.clear()
            if self._is_authenticated():
                try:
                    await self.reconcile()
                except Exception as exc:
                    self._logger.exception("Subscription reconcile failed: %s", exc)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval_s)
        self._logger.debug("Subscription loop stopped")
