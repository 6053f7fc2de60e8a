from __future__ import annotations

import logging
import queue
import time
from typing import List

from core.domain.entities.feed_event_entity import TradeEvent


class TickBuffer:
    """
    Bounded FIFO between the feed receive path and the aggregation path.

    put() never blocks: when the buffer is full the trade is dropped and counted.
    drain() pops under a dual bound (item count or wall-clock budget), whichever
    is hit first. Safe to use from threads as well as from asyncio tasks.
    """

    DROP_LOG_EVERY_S = 10.0

    def __init__(self, *, max_size: int = 100_000, logger: logging.Logger | None = None) -> None:
        self._q: "queue.Queue[TradeEvent]" = queue.Queue(maxsize=max(0, int(max_size)))
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._dropped = 0
        self._last_drop_log = 0.0

    @property
    def dropped(self) -> int:
        return self._dropped

    def qsize(self) -> int:
        return self._q.qsize()

    def empty(self) -> bool:
        return self._q.empty()

    def put(self, event: TradeEvent) -> bool:
        try:
            self._q.put_nowait(event)
            return True
        except queue.Full:
            self._dropped += 1
            now = time.monotonic()
            if now - self._last_drop_log >= self.DROP_LOG_EVERY_S:
                self._last_drop_log = now
                self._logger.warning(
                    "Tick buffer full (size=%s); dropping ticks. dropped_total=%s",
                    self._q.maxsize,
                    self._dropped,
                )
            return False

    def drain(self, *, max_items: int = 2000, budget_s: float = 0.25) -> List[TradeEvent]:
        out: List[TradeEvent] = []
        deadline = time.monotonic() + max(0.0, float(budget_s))
        while len(out) < max_items:
            try:
                out.append(self._q.get_nowait())
            except queue.Empty:
                break
            if time.monotonic() >= deadline:
                break
        return out
