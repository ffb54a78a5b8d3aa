"""Confluence scorer: weighted multi-confirmation signal scoring.

Each indicator contributes up to a fixed number of points.  Buy-side and
sell-side points are summed independently; the larger side wins and its
total is the signal strength (capped at 100).

    RSI extreme                 30 / approaching band 15
    Bollinger band proximity    25 within 0.5 % / 12 within 1.5 %
    MACD histogram              20 sign + accelerating / 10 sign only
    EMA 9/21 crossover          15 fresh cross / 7 trend-aligned
    Last-bar momentum           10 above 0.5 % / 5 above 0.2 %

A signal is emitted only if the strength reaches the risk tier's
``min_strength`` and at least ``min_confirmations`` distinct indicators
scored for the winning side.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pulse.risk.tiers import RiskLevel
from pulse.strategy.base import exit_prices
from pulse.strategy.indicators import (
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
)
from pulse.strategy.models import BUY, SELL, Signal

logger = logging.getLogger("pulse.strategy")

MIN_HISTORY = 50

RSI_PERIOD = 14
BB_PERIOD = 20
BB_STD_DEV = 2.0
EMA_FAST = 9
EMA_SLOW = 21


class _Tally:
    """Accumulates points and reasons for one side of the book."""

    def __init__(self) -> None:
        self.points = 0
        self.indicators: list[str] = []
        self.reasons: list[str] = []

    def add(self, indicator: str, points: int, reason: str) -> None:
        self.points += points
        if indicator not in self.indicators:
            self.indicators.append(indicator)
        self.reasons.append(reason)


class ConfluenceScorer:
    """Weighted multi-indicator scorer (RSI, Bollinger, MACD, EMA, momentum)."""

    name = "confluence"
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
        """Score the latest close.  Returns ``None`` when no signal qualifies."""
        if len(closes) < self.min_history:
            self.last_insight = {
                "strategy": self.name,
                "symbol": symbol,
                "result": "insufficient_history",
                "bars": len(closes),
            }
            return None

        buy = _Tally()
        sell = _Tally()

        last_price = closes[-1]
        prev_price = closes[-2]

        rsi = calculate_rsi(closes, RSI_PERIOD)
        bands = calculate_bollinger(closes, BB_PERIOD, BB_STD_DEV)
        macd = calculate_macd(closes)
        ema_fast = calculate_ema(closes, EMA_FAST)
        ema_slow = calculate_ema(closes, EMA_SLOW)

        # 1. RSI (30 points)
        if rsi < 30:
            buy.add("rsi", 30, f"RSI Oversold ({rsi:.1f})")
        elif rsi > 70:
            sell.add("rsi", 30, f"RSI Overbought ({rsi:.1f})")
        elif rsi < 40:
            buy.add("rsi", 15, f"RSI Low ({rsi:.1f})")
        elif rsi > 60:
            sell.add("rsi", 15, f"RSI High ({rsi:.1f})")

        # 2. Bollinger Bands (25 points)
        if bands.lower > 0 and bands.upper > 0:
            lower_dist = (last_price - bands.lower) / bands.lower * 100
            upper_dist = (bands.upper - last_price) / bands.upper * 100
            if lower_dist < 0.5:
                buy.add("bollinger", 25, f"Price at Lower BB (${bands.lower:.2f})")
            elif upper_dist < 0.5:
                sell.add("bollinger", 25, f"Price at Upper BB (${bands.upper:.2f})")
            elif lower_dist < 1.5:
                buy.add("bollinger", 12, "Price near Lower BB")
            elif upper_dist < 1.5:
                sell.add("bollinger", 12, "Price near Upper BB")

        # 3. MACD (20 points)
        if macd.histogram > 0 and macd.histogram > macd.prev_histogram:
            buy.add("macd", 20, "MACD Bullish Momentum")
        elif macd.histogram < 0 and macd.histogram < macd.prev_histogram:
            sell.add("macd", 20, "MACD Bearish Momentum")
        elif macd.histogram > 0:
            buy.add("macd", 10, "MACD Bullish")
        elif macd.histogram < 0:
            sell.add("macd", 10, "MACD Bearish")

        # 4. EMA 9/21 crossover (15 points)
        fast_now, slow_now = ema_fast[-1], ema_slow[-1]
        fast_prev, slow_prev = ema_fast[-2], ema_slow[-2]
        if fast_now > slow_now and fast_prev <= slow_prev:
            buy.add("ema", 15, f"Golden Cross (EMA {EMA_FAST}/{EMA_SLOW})")
        elif fast_now < slow_now and fast_prev >= slow_prev:
            sell.add("ema", 15, f"Death Cross (EMA {EMA_FAST}/{EMA_SLOW})")
        elif fast_now > slow_now:
            buy.add("ema", 7, f"EMA {EMA_FAST} above EMA {EMA_SLOW}")
        elif fast_now < slow_now:
            sell.add("ema", 7, f"EMA {EMA_FAST} below EMA {EMA_SLOW}")

        # 5. Last-bar momentum (10 points)
        momentum = (last_price - prev_price) / prev_price * 100 if prev_price else 0.0
        if momentum > 0.5:
            buy.add("momentum", 10, "Strong Upward Momentum")
        elif momentum < -0.5:
            sell.add("momentum", 10, "Strong Downward Momentum")
        elif momentum > 0.2:
            buy.add("momentum", 5, "Upward Momentum")
        elif momentum < -0.2:
            sell.add("momentum", 5, "Downward Momentum")

        self.last_insight = {
            "strategy": self.name,
            "symbol": symbol,
            "price": last_price,
            "rsi": round(rsi, 2),
            "bb_upper": bands.upper,
            "bb_lower": bands.lower,
            "macd_histogram": macd.histogram,
            "ema_fast": fast_now,
            "ema_slow": slow_now,
            "momentum_pct": round(momentum, 4),
            "buy_points": buy.points,
            "sell_points": sell.points,
        }

        if buy.points == sell.points:
            self.last_insight["result"] = "no_bias"
            return None

        if buy.points > sell.points:
            direction, winner = BUY, buy
        else:
            direction, winner = SELL, sell

        strength = min(100, winner.points)
        if strength < risk_level.min_strength:
            self.last_insight["result"] = "too_weak"
            return None
        if len(winner.indicators) < risk_level.min_confirmations:
            self.last_insight["result"] = "not_confirmed"
            return None

        stop_loss_price, take_profit_price = exit_prices(
            last_price, direction, risk_level.stop_loss_pct, risk_level.take_profit_pct,
        )
        self.last_insight["result"] = "signal"
        logger.info(
            "%s %s signal (strength=%d, tier=%s): %s",
            symbol, direction, strength, risk_level.name, ", ".join(winner.reasons),
        )
        return Signal(
            symbol=symbol,
            direction=direction,
            strength=strength,
            entry_price=last_price,
            stop_loss_price=stop_loss_price,
            take_profit_price=take_profit_price,
            reasons=tuple(winner.reasons),
            risk_tier_name=risk_level.name,
            stop_loss_pct=-risk_level.stop_loss_pct,
            take_profit_pct=risk_level.take_profit_pct,
            created_at=now or datetime.now(timezone.utc),
        )
