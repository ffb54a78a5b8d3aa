"""Band-touch scorer: binary RSI + Bollinger band filter.

BUY when RSI < 40 and the close sits at (or within 0.1 % above) the lower
band; SELL when RSI > 60 and the close sits at (or within 0.1 % below) the
upper band.  Exits are a fixed 1 % stop and 5 % target, whatever the
selected risk tier.  ATR plays no part in the decision; it is reported in
``last_insight`` for the status endpoint.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pulse.risk.tiers import RiskLevel
from pulse.strategy.base import exit_prices
from pulse.strategy.indicators import calculate_atr, calculate_bollinger, calculate_rsi
from pulse.strategy.models import BUY, SELL, Signal

logger = logging.getLogger("pulse.strategy")

MIN_HISTORY = 20

STOP_LOSS_PCT = 1.0
TAKE_PROFIT_PCT = 5.0
BAND_TOLERANCE = 0.001

# The rule is binary: a qualifying touch is always full strength.
TOUCH_STRENGTH = 100


class BandTouchScorer:
    """RSI-confirmed Bollinger band touch ("squeeze and bounce")."""

    name = "band_touch"
    min_history = MIN_HISTORY

    def __init__(self) -> None:
        self.last_insight: dict = {}

    def score(
        self,
        symbol: str,
        closes: list[float],
        highs: list[float],
        lows: list[float],
        risk_level: RiskLevel,
        now: Optional[datetime] = None,
    ) -> Optional[Signal]:
        if len(closes) < self.min_history:
            self.last_insight = {
                "strategy": self.name,
                "symbol": symbol,
                "result": "insufficient_history",
                "bars": len(closes),
            }
            return None

        rsi = calculate_rsi(closes, 14)
        bands = calculate_bollinger(closes, 20, 2.0)
        atr = calculate_atr(highs, lows, closes, 14)
        last_price = closes[-1]

        self.last_insight = {
            "strategy": self.name,
            "symbol": symbol,
            "price": last_price,
            "rsi": round(rsi, 2),
            "bb_upper": bands.upper,
            "bb_lower": bands.lower,
            "atr": atr,
        }

        if rsi < 40 and last_price <= bands.lower * (1 + BAND_TOLERANCE):
            direction = BUY
            reasons = (
                f"Price hit Lower Bollinger Band (${bands.lower:.2f})",
                f"RSI Oversold ({rsi:.0f})",
            )
        elif rsi > 60 and last_price >= bands.upper * (1 - BAND_TOLERANCE):
            direction = SELL
            reasons = (
                f"Price hit Upper Bollinger Band (${bands.upper:.2f})",
                f"RSI Overbought ({rsi:.0f})",
            )
        else:
            self.last_insight["result"] = "inside_bands"
            return None

        stop_loss_price, take_profit_price = exit_prices(
            last_price, direction, STOP_LOSS_PCT, TAKE_PROFIT_PCT,
        )
        self.last_insight["result"] = "signal"
        logger.info("%s %s band touch: %s", symbol, direction, ", ".join(reasons))
        return Signal(
            symbol=symbol,
            direction=direction,
            strength=TOUCH_STRENGTH,
            entry_price=last_price,
            stop_loss_price=stop_loss_price,
            take_profit_price=take_profit_price,
            reasons=reasons,
            risk_tier_name=risk_level.name,
            stop_loss_pct=-STOP_LOSS_PCT,
            take_profit_pct=TAKE_PROFIT_PCT,
            created_at=now or datetime.now(timezone.utc),
        )
