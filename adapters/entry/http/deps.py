from __future__ import annotations

from fastapi import HTTPException, Request

from core.usecases.live_candle_stream_use_case import LiveCandleStreamUseCase


def get_stream(request: Request) -> LiveCandleStreamUseCase:
    stream = getattr(request.app.state, "stream", None)
    if stream is None or not stream.running:
        raise HTTPException(status_code=503, detail="live stream is not running")
    return stream
