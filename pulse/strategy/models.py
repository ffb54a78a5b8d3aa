"""Strategy data models: typed representations for indicator and scorer outputs."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid

BUY = "BUY"
SELL = "SELL"

LONG = "long"
SHORT = "short"


@dataclass(frozen=True)
class BollingerBands:
    """Bollinger envelope over the most recent window."""

    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class MACDResult:
    """MACD values at the last bar, plus the prior bar's histogram."""

    macd: float
    signal: float
    histogram: float
    prev_histogram: float


@dataclass(frozen=True)
class Signal:
    """A scored, directional trade recommendation.

    ``stop_loss_pct`` and ``take_profit_pct`` are the PnL-on-margin
    thresholds a position opened from this signal is monitored with
    (negative stop, positive target).
    """

    symbol: str
    direction: str  # "BUY" or "SELL"
    strength: float  # 0-100
    entry_price: float
    stop_loss_price: float
    take_profit_price: float
    reasons: tuple[str, ...]
    risk_tier_name: str
    stop_loss_pct: float
    take_profit_pct: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def side(self) -> str:
        """Position side this signal maps to (``"long"`` / ``"short"``)."""
        return LONG if self.direction == BUY else SHORT

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "direction": self.direction,
            "side": self.side,
            "strength": self.strength,
            "entry_price": self.entry_price,
            "stop_loss_price": self.stop_loss_price,
            "take_profit_price": self.take_profit_price,
            "reasons": list(self.reasons),
            "risk_tier": self.risk_tier_name,
            "created_at": self.created_at.isoformat(),
        }
