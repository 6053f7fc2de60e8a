from __future__ import annotations

from decimal import Decimal

from bson.decimal128 import Decimal128

from adapters.external.database.candle_repository_mongodb import CandleRepositoryMongoDB
from config.settings import Settings
from core.domain.entities.candle_entity import CandleEntity
from tests.fakes import utc_ms


def test_feed_credentials_prefer_account_pair(monkeypatch):
    monkeypatch.setenv("FEED_API_KEY", "base-key")
    monkeypatch.setenv("FEED_API_SECRET", "base-secret")
    monkeypatch.setenv("FEED_API_KEY_PAPER", "paper-key")
    monkeypatch.setenv("FEED_API_SECRET_PAPER", "paper-secret")
    s = Settings()

    assert s.feed_credentials("paper") == ("paper-key", "paper-secret")
    assert s.feed_credentials("") == ("base-key", "base-secret")
    assert s.feed_credentials("live") == ("base-key", "base-secret")


def test_feed_url_sandbox_switch():
    s = Settings()
    assert s.feed_url(sandbox=True) == s.FEED_SANDBOX_WS_URL
    assert s.feed_url(sandbox=False) == s.FEED_WS_URL


def _candle() -> CandleEntity:
    return CandleEntity(
        asset_id=1,
        timeframe="1m",
        open_time=utc_ms(14, 30),
        close_time=utc_ms(14, 31) - 1,
        open=Decimal("150"),
        high=Decimal("151"),
        low=Decimal("149.5"),
        close=Decimal("149.5"),
        volume=Decimal("35"),
    )


def test_delta_pipeline_adds_volume_server_side():
    (stage,) = CandleRepositoryMongoDB._merge_pipeline(_candle(), "delta")
    fields = stage["$set"]
    assert fields["volume"]["$add"][1] == {"$literal": Decimal128("35")}
    assert fields["open"] == {"$ifNull": ["$open", {"$literal": Decimal128("150")}]}
    assert fields["high"] == {"$max": ["$high", {"$literal": Decimal128("151")}]}
    assert fields["low"] == {"$min": ["$low", {"$literal": Decimal128("149.5")}]}
    assert fields["close"] == {"$literal": Decimal128("149.5")}


def test_snapshot_pipeline_replaces_volume():
    (stage,) = CandleRepositoryMongoDB._merge_pipeline(_candle(), "snapshot")
    assert stage["$set"]["volume"] == {"$literal": Decimal128("35")}
    assert stage["$set"]["trade_count"] == {"$ifNull": ["$trade_count", {"$literal": None}]}
