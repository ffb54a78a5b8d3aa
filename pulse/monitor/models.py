"""Position data models: the simulated leveraged position and its close event."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

OPEN = "open"
CLOSED = "closed"

STOP_LOSS = "StopLoss"
TAKE_PROFIT = "TakeProfit"
MANUAL = "Manual"


@dataclass
class Position:
    """A simulated leveraged position.

    Owned by exactly one ``PositionMonitor``; only that monitor mutates
    ``state``, ``current_price``, ``unrealized_pnl``, ``pnl_percent`` and
    ``stale``.
    """

    id: str
    symbol: str
    side: str  # "long" or "short"
    entry_price: float
    leverage: float
    margin: float
    size: float
    liquidation_price: float
    fee: float
    stop_loss_pct: float  # PnL % of margin, negative
    take_profit_pct: float  # PnL % of margin, positive
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    signal_id: Optional[str] = None
    state: str = OPEN
    close_reason: Optional[str] = None
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    pnl_percent: float = 0.0
    stale: bool = False

    def __post_init__(self) -> None:
        if not self.current_price:
            self.current_price = self.entry_price

    @property
    def is_open(self) -> bool:
        return self.state == OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side,
            "entry_price": self.entry_price,
            "leverage": self.leverage,
            "margin": self.margin,
            "size": self.size,
            "liquidation_price": self.liquidation_price,
            "fee": self.fee,
            "stop_loss_pct": self.stop_loss_pct,
            "take_profit_pct": self.take_profit_pct,
            "opened_at": self.opened_at.isoformat(),
            "signal_id": self.signal_id,
            "state": self.state,
            "close_reason": self.close_reason,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "pnl_percent": self.pnl_percent,
            "stale": self.stale,
        }


@dataclass(frozen=True)
class PositionCloseEvent:
    """Terminal event emitted exactly once per position."""

    position_id: str
    symbol: str
    reason: str  # StopLoss | TakeProfit | Manual
    realized_pnl: float
    returned_margin: float
    exit_price: float
    closed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "position_id": self.position_id,
            "symbol": self.symbol,
            "reason": self.reason,
            "realized_pnl": self.realized_pnl,
            "returned_margin": self.returned_margin,
            "exit_price": self.exit_price,
            "closed_at": self.closed_at.isoformat(),
        }
