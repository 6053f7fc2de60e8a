from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class StreamStatusEntity(BaseModel):
    """
    Point-in-time view of the live stream, served by GET /stream/status.
    """

    running: bool
    feed_url: str
    connected: bool
    authenticated: bool
    reconnects: int = 0
    subscribed_count: int = 0
    cached_assets: int = 0
    buffer_depth: int = 0
    dropped_ticks: int = 0
    batches_processed: int = 0
    last_batch_size: Optional[int] = None
    last_minute_ts: Optional[int] = None
    open_buckets: int = 0
