"""Position monitor: per-position live PnL and the OPEN → CLOSED state machine.

Rules (evaluated on every tick while OPEN):
  - raw PnL  long  = (price - entry) / entry × size
             short = (entry - price) / entry × size
  - pnl %    = raw PnL / margin × 100
  - pnl % ≤ stop-loss threshold    → CLOSED(StopLoss)
  - pnl % ≥ take-profit threshold  → CLOSED(TakeProfit)
  - manual close request           → CLOSED(Manual) with the last PnL

Stop-loss is checked first.  The close transition fires exactly once;
ticks arriving afterwards are ignored.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pulse.events import EventBus, PositionStale, PositionUpdated
from pulse.market.models import Candle, Tick
from pulse.market.stream import FeedStale, TickSubscription
from pulse.monitor.models import (
    CLOSED,
    MANUAL,
    OPEN,
    STOP_LOSS,
    TAKE_PROFIT,
    Position,
    PositionCloseEvent,
)
from pulse.strategy.models import LONG

logger = logging.getLogger("pulse.monitor")


def calculate_pnl(side: str, entry_price: float, price: float, size: float) -> float:
    """Unrealized PnL of a position of *size* notional at *price*."""
    if side == LONG:
        return (price - entry_price) / entry_price * size
    return (entry_price - price) / entry_price * size


class PositionMonitor:
    """Owns one ``Position`` and drives it to a single close event.

    Args:
        position: The freshly opened position (state OPEN).
        bus: Sink for update, staleness and close events.
        subscription: Live last-price stream for the position's symbol.
            Optional so the state machine can be driven directly.
    """

    def __init__(
        self,
        position: Position,
        bus: EventBus,
        subscription: Optional[TickSubscription] = None,
    ) -> None:
        self.position = position
        self._bus = bus
        self._subscription = subscription
        self._close_event: Optional[PositionCloseEvent] = None

    @property
    def state(self) -> str:
        return self.position.state

    @property
    def close_event(self) -> Optional[PositionCloseEvent]:
        return self._close_event

    # ── State machine ────────────────────────────────────────────────────

    def on_price(self, price: float) -> Optional[PositionCloseEvent]:
        """Apply one tick.  Returns the close event if this tick closed the position."""
        pos = self.position
        if pos.state != OPEN:
            return None

        raw_pnl = calculate_pnl(pos.side, pos.entry_price, price, pos.size)
        pnl_percent = raw_pnl / pos.margin * 100

        pos.current_price = price
        pos.unrealized_pnl = raw_pnl
        pos.pnl_percent = pnl_percent
        pos.stale = False

        if pnl_percent <= pos.stop_loss_pct:
            return self._transition(STOP_LOSS)
        if pnl_percent >= pos.take_profit_pct:
            return self._transition(TAKE_PROFIT)

        self._bus.publish(PositionUpdated(
            position_id=pos.id,
            symbol=pos.symbol,
            price=price,
            unrealized_pnl=raw_pnl,
            pnl_percent=pnl_percent,
        ))
        return None

    def mark_stale(self, reason: str) -> None:
        """Flag the position's PnL as stale after a feed drop."""
        pos = self.position
        if pos.state != OPEN or pos.stale:
            return
        pos.stale = True
        logger.warning("Position %s (%s) price feed stale: %s", pos.id, pos.symbol, reason)
        self._bus.publish(PositionStale(position_id=pos.id, symbol=pos.symbol, reason=reason))

    def _transition(self, reason: str) -> Optional[PositionCloseEvent]:
        pos = self.position
        if pos.state != OPEN:
            return None
        pos.state = CLOSED
        pos.close_reason = reason

        event = PositionCloseEvent(
            position_id=pos.id,
            symbol=pos.symbol,
            reason=reason,
            realized_pnl=pos.unrealized_pnl,
            returned_margin=pos.margin + pos.unrealized_pnl,
            exit_price=pos.current_price,
            closed_at=datetime.now(timezone.utc),
        )
        self._close_event = event
        logger.info(
            "Position %s %s %s closed: %s (pnl=%.2f, %.2f%%)",
            pos.id, pos.side, pos.symbol, reason, pos.unrealized_pnl, pos.pnl_percent,
        )
        self._bus.publish(event)
        return event

    # ── Manual close ─────────────────────────────────────────────────────

    async def request_close(self) -> Optional[PositionCloseEvent]:
        """Close immediately with the last computed PnL.

        Returns ``None`` if the position was already closed.
        """
        event = self._transition(MANUAL)
        await self._release()
        return event

    # ── Stream loop ──────────────────────────────────────────────────────

    async def run(self) -> Optional[PositionCloseEvent]:
        """Consume the price stream until the position closes.

        Returns the close event (``None`` if the stream was closed from
        outside before any transition).
        """
        if self._subscription is None:
            raise RuntimeError(f"Position {self.position.id} has no price subscription")

        events = self._subscription.events()
        try:
            async for item in events:
                if self.position.state != OPEN:
                    break
                if isinstance(item, FeedStale):
                    self.mark_stale(item.reason)
                elif isinstance(item, Tick):
                    if self.on_price(item.price) is not None:
                        break
                elif isinstance(item, Candle):
                    if self.on_price(item.close) is not None:
                        break
        finally:
            await events.aclose()
            await self._release()
        return self._close_event

    async def _release(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
