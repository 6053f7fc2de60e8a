from __future__ import annotations

from fastapi import APIRouter, Depends

from core.domain.entities.stream_status_entity import StreamStatusEntity
from core.usecases.live_candle_stream_use_case import LiveCandleStreamUseCase

from .deps import get_stream

router = APIRouter(prefix="/stream", tags=["stream"])


@router.get("/status", response_model=StreamStatusEntity)
async def stream_status(stream: LiveCandleStreamUseCase = Depends(get_stream)) -> StreamStatusEntity:
    """
    Connection, subscription and pipeline counters of the live stream.
    """
    return stream.status()
