"""Position book: the set of open simulated positions and their monitor tasks.

Each accepted signal or manual order becomes a ``Position`` with its own
``PositionMonitor`` running as an ``asyncio`` task on a dedicated price
subscription.  A position leaves the book the moment its monitor publishes
its close event.
"""

import asyncio
import logging
import uuid
from typing import Callable, Optional

from pulse.events import EventBus, PositionOpened
from pulse.market.stream import TickSubscription
from pulse.monitor.models import Position, PositionCloseEvent
from pulse.monitor.position import PositionMonitor
from pulse.risk.tiers import DEFAULT_STOP_LOSS_PCT, DEFAULT_TAKE_PROFIT_PCT
from pulse.risk.trade_calculator import compute_trade
from pulse.strategy.models import Signal

logger = logging.getLogger("pulse.book")


class PositionLimitReached(RuntimeError):
    """Opening another position would exceed ``max_open_positions``."""


class PositionBook:
    """Opens, tracks and closes simulated positions.

    Args:
        bus: Event sink shared with the rest of the core.
        subscription_factory: ``symbol -> TickSubscription`` for last-price
            streams (see ``pulse.market.stream.mini_ticker_subscription``).
        max_open_positions: Upper bound on concurrently open positions.
        default_leverage: Leverage used when a signal is executed without one.
        default_margin: Margin used when a signal is executed without one.
    """

    def __init__(
        self,
        bus: EventBus,
        subscription_factory: Callable[[str], TickSubscription],
        max_open_positions: int = 5,
        default_leverage: float = 10,
        default_margin: float = 1000.0,
    ) -> None:
        self._bus = bus
        self._subscription_factory = subscription_factory
        self._max_open = max_open_positions
        self._default_leverage = default_leverage
        self._default_margin = default_margin
        self._monitors: dict[str, PositionMonitor] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        bus.add_listener(self._on_event)

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def open_positions(self) -> list[Position]:
        return [m.position for m in self._monitors.values()]

    @property
    def default_margin(self) -> float:
        return self._default_margin

    def get(self, position_id: str) -> Optional[Position]:
        monitor = self._monitors.get(position_id)
        return monitor.position if monitor else None

    def __len__(self) -> int:
        return len(self._monitors)

    # ── Opening ──────────────────────────────────────────────────────────

    async def open_from_signal(
        self,
        signal: Signal,
        leverage: Optional[float] = None,
        margin: Optional[float] = None,
    ) -> Position:
        """Convert an accepted signal into a monitored position.

        Exit thresholds are carried over from the signal.
        """
        return await self._open(
            symbol=signal.symbol,
            side=signal.side,
            entry_price=signal.entry_price,
            leverage=leverage if leverage is not None else self._default_leverage,
            margin=margin if margin is not None else self._default_margin,
            stop_loss_pct=signal.stop_loss_pct,
            take_profit_pct=signal.take_profit_pct,
            signal_id=signal.id,
        )

    async def open_manual(
        self,
        symbol: str,
        side: str,
        entry_price: float,
        leverage: float,
        margin: float,
        stop_loss_pct: float = DEFAULT_STOP_LOSS_PCT,
        take_profit_pct: float = DEFAULT_TAKE_PROFIT_PCT,
    ) -> Position:
        """Open a manually entered position (default -3 % / +12 % exits)."""
        return await self._open(
            symbol=symbol.upper(),
            side=side,
            entry_price=entry_price,
            leverage=leverage,
            margin=margin,
            stop_loss_pct=stop_loss_pct,
            take_profit_pct=take_profit_pct,
        )

    async def _open(
        self,
        symbol: str,
        side: str,
        entry_price: float,
        leverage: float,
        margin: float,
        stop_loss_pct: float,
        take_profit_pct: float,
        signal_id: Optional[str] = None,
    ) -> Position:
        if len(self._monitors) >= self._max_open:
            raise PositionLimitReached(
                f"Max open positions ({self._max_open}) reached"
            )
        # Raises InvalidTradeParameters before anything is created.
        quote = compute_trade(entry_price, leverage, margin, side)

        position = Position(
            id=uuid.uuid4().hex[:12],
            symbol=symbol,
            side=side,
            entry_price=entry_price,
            leverage=leverage,
            margin=margin,
            size=quote.size,
            liquidation_price=quote.liquidation_price,
            fee=quote.fee,
            stop_loss_pct=stop_loss_pct,
            take_profit_pct=take_profit_pct,
            signal_id=signal_id,
        )
        monitor = PositionMonitor(
            position,
            self._bus,
            subscription=self._subscription_factory(symbol),
        )
        self._monitors[position.id] = monitor
        self._tasks[position.id] = asyncio.create_task(
            self._run_monitor(monitor), name=f"monitor-{position.id}",
        )

        logger.info(
            "Opened %s %s @ %.6f (x%s, margin=%.2f, size=%.2f, liq=%.6f)",
            side, symbol, entry_price, leverage, margin, quote.size, quote.liquidation_price,
        )
        self._bus.publish(PositionOpened(
            position_id=position.id,
            symbol=symbol,
            side=side,
            entry_price=entry_price,
            size=quote.size,
            margin=margin,
            liquidation_price=quote.liquidation_price,
        ))
        return position

    async def _run_monitor(self, monitor: PositionMonitor) -> None:
        try:
            await monitor.run()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Monitor for position %s crashed", monitor.position.id)
            monitor.mark_stale(f"monitor stopped: {exc}")
        finally:
            self._tasks.pop(monitor.position.id, None)

    # ── Closing ──────────────────────────────────────────────────────────

    async def close(self, position_id: str) -> PositionCloseEvent:
        """Manually close an open position.

        Raises ``KeyError`` if no open position has this id.
        """
        monitor = self._monitors.get(position_id)
        if monitor is None:
            raise KeyError(f"Unknown position: {position_id}")
        event = await monitor.request_close()
        # A threshold close may have won the race; report whichever fired.
        return event or monitor.close_event

    async def close_all(self) -> list[PositionCloseEvent]:
        """Manually close every open position (shutdown)."""
        events = []
        for position_id in list(self._monitors):
            if position_id in self._monitors:
                events.append(await self.close(position_id))
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return events

    def _on_event(self, event: object) -> None:
        if isinstance(event, PositionCloseEvent):
            self._monitors.pop(event.position_id, None)
