"""
Application configuration for api-live-candles.

Centralizes environment variables using python-dotenv.

Note:
- Watchlists, assets and candles live in MongoDB.
- Backfill markers and the candle read cache live in Redis.
- The .env carries connection strings, feed credentials and pipeline tuning.
"""

import os
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class Settings:
    """
    Configuration settings for the api-live-candles service.
    """

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    APP_NAME: str = os.getenv("APP_NAME", "api-live-candles")

    # Mongo
    MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://mongo-market-data:27017")
    MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "api_live_candles")

    # Redis (backfill markers + candle read cache)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Market-data feed
    FEED_WS_URL: str = os.getenv("FEED_WS_URL", "wss://stream.data.alpaca.markets/v2/iex")
    FEED_SANDBOX_WS_URL: str = os.getenv("FEED_SANDBOX_WS_URL", "wss://stream.data.sandbox.alpaca.markets/v2/iex")
    FEED_USE_SANDBOX: bool = os.getenv("FEED_USE_SANDBOX", "false").lower() == "true"
    FEED_ACCOUNT: str = os.getenv("FEED_ACCOUNT", "")
    FEED_PING_INTERVAL_S: float = float(os.getenv("FEED_PING_INTERVAL_S", "20"))
    FEED_PING_TIMEOUT_S: float = float(os.getenv("FEED_PING_TIMEOUT_S", "10"))
    FEED_RECONNECT_DELAY_S: float = float(os.getenv("FEED_RECONNECT_DELAY_S", "10"))
    FEED_AUTH_TIMEOUT_S: float = float(os.getenv("FEED_AUTH_TIMEOUT_S", "30"))

    # Pipeline
    SUBSCRIPTION_RECONCILE_INTERVAL_S: float = float(os.getenv("SUBSCRIPTION_RECONCILE_INTERVAL_S", "5"))
    TICK_BUFFER_MAX_SIZE: int = int(os.getenv("TICK_BUFFER_MAX_SIZE", "100000"))
    DRAIN_MAX_TICKS: int = int(os.getenv("DRAIN_MAX_TICKS", "2000"))
    DRAIN_BUDGET_MS: int = int(os.getenv("DRAIN_BUDGET_MS", "250"))
    DRAIN_IDLE_SLEEP_S: float = float(os.getenv("DRAIN_IDLE_SLEEP_S", "0.1"))
    OPEN_BUCKET_FLUSH_INTERVAL_S: float = float(os.getenv("OPEN_BUCKET_FLUSH_INTERVAL_S", "1.0"))
    ROLLUP_TIMEFRAMES: list[str] = _csv(os.getenv("ROLLUP_TIMEFRAMES", "5m,15m,30m,1h,4h,1d"))
    STALE_CANDLE_THRESHOLD_S: float = float(os.getenv("STALE_CANDLE_THRESHOLD_S", "120"))

    # Regular trading hours for session-bound asset classes
    SESSION_BOUND_ASSET_CLASSES: list[str] = _csv(os.getenv("SESSION_BOUND_ASSET_CLASSES", "us_equity,us_option"))
    RTH_TIMEZONE: str = os.getenv("RTH_TIMEZONE", "America/New_York")
    RTH_OPEN: str = os.getenv("RTH_OPEN", "09:30")
    RTH_CLOSE: str = os.getenv("RTH_CLOSE", "16:00")

    # Backfill coordination
    BACKFILL_BASE_URL: str = os.getenv("BACKFILL_BASE_URL", "http://host.docker.internal:8090")
    BACKFILL_QUEUED_TTL_S: int = int(os.getenv("BACKFILL_QUEUED_TTL_S", str(60 * 60)))
    BACKFILL_MIN_HISTORY_DAYS: float = float(os.getenv("BACKFILL_MIN_HISTORY_DAYS", "4"))
    BACKFILL_RECENT_DAYS: float = float(os.getenv("BACKFILL_RECENT_DAYS", "1"))
    BACKFILL_HEURISTIC_TTL_S: float = float(os.getenv("BACKFILL_HEURISTIC_TTL_S", "30"))

    def feed_url(self, sandbox: Optional[bool] = None) -> str:
        """
        Resolve the feed endpoint, honoring the sandbox switch.
        """
        use_sandbox = self.FEED_USE_SANDBOX if sandbox is None else bool(sandbox)
        return self.FEED_SANDBOX_WS_URL if use_sandbox else self.FEED_WS_URL

    def feed_credentials(self, account: Optional[str] = None) -> Tuple[str, str]:
        """
        Resolve (key, secret) for an account.

        FEED_API_KEY_<ACCOUNT> / FEED_API_SECRET_<ACCOUNT> win over the plain
        FEED_API_KEY / FEED_API_SECRET pair when an account is selected.
        """
        name = (account if account is not None else self.FEED_ACCOUNT or "").strip().upper()
        key = os.getenv("FEED_API_KEY", "")
        secret = os.getenv("FEED_API_SECRET", "")
        if name:
            key = os.getenv(f"FEED_API_KEY_{name}", key)
            secret = os.getenv(f"FEED_API_SECRET_{name}", secret)
        return key, secret


settings = Settings()
