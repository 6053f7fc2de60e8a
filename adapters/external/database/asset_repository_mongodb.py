from __future__ import annotations

from typing import Iterable, List, Set

from motor.motor_asyncio import AsyncIOMotorDatabase

from core.domain.entities.asset_entity import AssetEntity
from core.domain.entities.watchlist_entity import WatchlistAssetEntity, WatchlistEntity
from core.repositories.asset_repository import AssetRepository


class AssetRepositoryMongoDB(AssetRepository):
    """
    MongoDB view over the asset catalog and watchlists.

    Collections:
      - assets:           one document per instrument (asset_id, symbol, asset_class)
      - watchlists:       watchlist_id, is_active
      - watchlist_assets: watchlist_id, asset_id, symbol, is_active
    """

    COLLECTION = "assets"
    WATCHLISTS = "watchlists"
    WATCHLIST_ASSETS = "watchlist_assets"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        await self._db[self.COLLECTION].create_index([("asset_id", 1)], unique=True)
        await self._db[self.COLLECTION].create_index([("symbol", 1)])
        await self._db[self.WATCHLISTS].create_index([("watchlist_id", 1)], unique=True)
        await self._db[self.WATCHLIST_ASSETS].create_index([("watchlist_id", 1), ("asset_id", 1)], unique=True)
        await self._db[self.WATCHLIST_ASSETS].create_index([("is_active", 1), ("watchlist_id", 1)])

    async def list_active_watchlist_symbols(self) -> Set[str]:
        docs = await self._db[self.WATCHLISTS].find({"is_active": True}).to_list(length=10_000)
        watchlists = [WatchlistEntity.from_mongo(d) for d in docs]
        active_ids = [w.watchlist_id for w in watchlists if w is not None]
        if not active_ids:
            return set()

        cursor = self._db[self.WATCHLIST_ASSETS].find({"is_active": True, "watchlist_id": {"$in": active_ids}})
        members = [WatchlistAssetEntity.from_mongo(d) for d in await cursor.to_list(length=100_000)]
        return {m.symbol.upper() for m in members if m is not None and m.symbol}

    async def get_assets(self, symbols: Iterable[str]) -> List[AssetEntity]:
        wanted = sorted({str(s).upper() for s in symbols if s})
        if not wanted:
            return []
        col = self._db[self.COLLECTION]
        docs = await col.find({"symbol": {"$in": wanted}}).to_list(length=len(wanted) * 2)
        out = [AssetEntity.from_mongo(d) for d in docs]
        return [x for x in out if x is not None]
