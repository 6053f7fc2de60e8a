from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from bson.decimal128 import Decimal128
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import UpdateOne

from core.domain.entities.candle_entity import CandleEntity
from core.repositories.candle_repository import CandleRepository
from core.services.candle_merge_service import DELTA, validate_mode
from core.services.timeframe_service import MINUTE_TIMEFRAME


def _lit(value: Any) -> Dict[str, Any]:
    if isinstance(value, Decimal):
        value = Decimal128(value)
    return {"$literal": value}


class CandleRepositoryMongoDB(CandleRepository):
    """
    MongoDB implementation for candle persistence.

    Two collections:
      - candles_1m:  keyed by (asset_id, open_time)
      - candles_agg: keyed by (asset_id, timeframe, open_time)

    Upserts run as update pipelines so the merge with the stored row happens
    server-side in a single round trip per batch (bulk_write, unordered).
    """

    COLLECTION = "candles_1m"
    AGG_COLLECTION = "candles_agg"

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Args:
            db: Motor database handle.
        """
        self._db = db

    async def ensure_indexes(self) -> None:
        """
        Ensure uniqueness per candle identity and allow efficient first/last queries.
        """
        col = self._db[self.COLLECTION]
        await col.create_index([("asset_id", 1), ("open_time", 1)], unique=True)

        agg = self._db[self.AGG_COLLECTION]
        await agg.create_index([("asset_id", 1), ("timeframe", 1), ("open_time", 1)], unique=True)

    async def upsert_minute(self, candles: Sequence[CandleEntity], *, mode: str = DELTA) -> int:
        ops = [
            UpdateOne(
                {"asset_id": int(c.asset_id), "open_time": int(c.open_time)},
                self._merge_pipeline(c, mode),
                upsert=True,
            )
            for c in candles
        ]
        return await self._bulk(self.COLLECTION, ops)

    async def upsert_aggregated(self, timeframe: str, candles: Sequence[CandleEntity], *, mode: str = "snapshot") -> int:
        if timeframe == MINUTE_TIMEFRAME:
            raise ValueError("1m candles belong to upsert_minute")
        ops = [
            UpdateOne(
                {"asset_id": int(c.asset_id), "timeframe": timeframe, "open_time": int(c.open_time)},
                self._merge_pipeline(c, mode),
                upsert=True,
            )
            for c in candles
        ]
        return await self._bulk(self.AGG_COLLECTION, ops)

    async def latest_candle(self, asset_id: int, timeframe: str) -> Optional[CandleEntity]:
        return await self._edge_candle(asset_id, timeframe, direction=-1)

    async def earliest_candle(self, asset_id: int, timeframe: str) -> Optional[CandleEntity]:
        return await self._edge_candle(asset_id, timeframe, direction=1)

    async def has_candle_before(self, asset_id: int, timeframe: str, before_ms: int) -> bool:
        col, query = self._scope(asset_id, timeframe)
        query["open_time"] = {"$lt": int(before_ms)}
        doc = await col.find_one(query, projection={"_id": 1})
        return doc is not None

    # ---------------- helpers ----------------

    def _scope(self, asset_id: int, timeframe: str):
        if timeframe == MINUTE_TIMEFRAME:
            return self._db[self.COLLECTION], {"asset_id": int(asset_id)}
        return self._db[self.AGG_COLLECTION], {"asset_id": int(asset_id), "timeframe": timeframe}

    async def _edge_candle(self, asset_id: int, timeframe: str, *, direction: int) -> Optional[CandleEntity]:
        col, query = self._scope(asset_id, timeframe)
        doc = await col.find_one(query, sort=[("open_time", direction)])
        if not doc:
            return None
        doc.setdefault("timeframe", timeframe)
        return CandleEntity.from_mongo(doc)

    async def _bulk(self, collection: str, ops: List[UpdateOne]) -> int:
        if not ops:
            return 0
        res = await self._db[collection].bulk_write(ops, ordered=False)
        return int(res.upserted_count) + int(res.modified_count)

    @staticmethod
    def _merge_pipeline(candle: CandleEntity, mode: str) -> List[Dict[str, Any]]:
        """
        Update pipeline applying the candle merge rules against the stored row.

        $max/$min ignore nulls, so a missing stored high/low takes the incoming value.
        """
        mode = validate_mode(mode)
        now_ms = int(datetime.now(tz=timezone.utc).timestamp() * 1000)
        volume = candle.volume if candle.volume is not None else Decimal("0")

        if mode == DELTA:
            volume_expr: Any = {"$add": [{"$ifNull": ["$volume", _lit(Decimal("0"))]}, _lit(volume)]}
        else:
            volume_expr = _lit(volume)

        return [
            {
                "$set": {
                    "timeframe": _lit(candle.timeframe),
                    "close_time": _lit(int(candle.close_time)),
                    "open": {"$ifNull": ["$open", _lit(candle.open)]},
                    "high": {"$max": ["$high", _lit(candle.high)]},
                    "low": {"$min": ["$low", _lit(candle.low)]},
                    "close": _lit(candle.close),
                    "volume": volume_expr,
                    "trade_count": {"$ifNull": ["$trade_count", _lit(candle.trade_count)]},
                    "vwap": {"$ifNull": ["$vwap", _lit(candle.vwap)]},
                    "created_at": {"$ifNull": ["$created_at", _lit(now_ms)]},
                    "updated_at": _lit(now_ms),
                }
            }
        ]
