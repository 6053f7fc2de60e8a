from __future__ import annotations

import logging
from typing import Optional

from core.repositories.backfill_dispatcher import BackfillDispatcher
from core.repositories.key_value_store import KeyValueStore


class BackfillKeys:
    """
    Advisory marker keys shared with the historical backfill worker.
    """

    @staticmethod
    def queued(asset_id: int) -> str:
        return f"backfill:queued:{int(asset_id)}"

    @staticmethod
    def running(asset_id: int) -> str:
        return f"backfill:running:{int(asset_id)}"

    @staticmethod
    def complete(asset_id: int) -> str:
        return f"backfill:complete:{int(asset_id)}"


class BackfillCoordinator:
    """
    Deduplicates backfill requests and exposes per-asset backfill state.

    Markers (all TTL'd, all advisory):
      - queued:   set here when a request is dispatched, cleared by the worker
      - running:  held by the backfill worker while it runs
      - complete: written by the worker when a run finishes successfully

    is_running/is_complete raise on backend failure so the gate can tell
    "no" from "cannot confirm".
    """

    def __init__(
        self,
        *,
        store: KeyValueStore,
        dispatcher: Optional[BackfillDispatcher] = None,
        queued_ttl_s: int = 60 * 60,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._queued_ttl_s = int(queued_ttl_s)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def request_backfill(self, asset_id: int, *, source: str = "unknown") -> bool:
        """
        Idempotently enqueue a backfill for an asset.

        Returns True when a job was dispatched, False when one is already queued
        or the request could not be made.
        """
        key = BackfillKeys.queued(asset_id)
        try:
            acquired = await self._store.try_acquire(key, ttl_s=self._queued_ttl_s)
        except Exception as exc:
            self._logger.warning("Backfill request for asset_id=%s skipped, marker store unavailable: %s", asset_id, exc)
            return False

        if not acquired:
            self._logger.info("Backfill already queued for asset_id=%s (source=%s), skipping", asset_id, source)
            return False

        if self._dispatcher is None:
            self._logger.info("Backfill marked queued for asset_id=%s (source=%s), no dispatcher configured", asset_id, source)
            return True

        try:
            await self._dispatcher.dispatch(asset_id=int(asset_id), source=source)
        except Exception as exc:
            self._logger.exception("Failed to dispatch backfill for asset_id=%s: %s", asset_id, exc)
            await self._delete_quietly(key)
            return False

        self._logger.info("Backfill scheduled for asset_id=%s by %s", asset_id, source)
        return True

    async def is_running(self, asset_id: int) -> bool:
        return bool(await self._store.get(BackfillKeys.running(asset_id)))

    async def is_complete(self, asset_id: int) -> bool:
        return bool(await self._store.get(BackfillKeys.complete(asset_id)))

    async def _delete_quietly(self, *keys: str) -> None:
        try:
            await self._store.delete(*keys)
        except Exception as exc:
            self._logger.warning("Failed to clear backfill markers %s: %s", keys, exc)
