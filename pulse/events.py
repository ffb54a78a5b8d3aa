"""Event bus: signal and position lifecycle sinks.

Scanners publish ``SignalEmitted``; position monitors publish
``PositionOpened``, ``PositionUpdated``, ``PositionStale`` and the terminal
``PositionCloseEvent``.  Consumers either register a synchronous listener
(called inline, in publish order) or take an ``asyncio.Queue`` via
:meth:`EventBus.subscribe`.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from pulse.monitor.models import PositionCloseEvent
from pulse.strategy.models import Signal

logger = logging.getLogger("pulse.events")

__all__ = [
    "EventBus",
    "PositionCloseEvent",
    "PositionOpened",
    "PositionStale",
    "PositionUpdated",
    "SignalEmitted",
]


@dataclass(frozen=True)
class SignalEmitted:
    signal: Signal


@dataclass(frozen=True)
class PositionOpened:
    position_id: str
    symbol: str
    side: str
    entry_price: float
    size: float
    margin: float
    liquidation_price: float


@dataclass(frozen=True)
class PositionUpdated:
    position_id: str
    symbol: str
    price: float
    unrealized_pnl: float
    pnl_percent: float


@dataclass(frozen=True)
class PositionStale:
    """The price feed behind an open position dropped; PnL is not current."""

    position_id: str
    symbol: str
    reason: str


class EventBus:
    """In-process fan-out of core events to external collaborators."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[object], None]] = []
        self._queues: list[asyncio.Queue] = []

    def add_listener(self, listener: Callable[[object], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[object], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscribe(self, maxsize: int = 0) -> asyncio.Queue:
        """Return a queue that receives every event published from now on."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, event: object) -> None:
        """Deliver *event* to every listener and queue.

        A failing listener is logged and skipped so one bad consumer cannot
        stop the others.  A full queue drops the event for that subscriber.
        """
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener %r failed on %s", listener, type(event).__name__)
        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Event queue full, dropped %s", type(event).__name__)
