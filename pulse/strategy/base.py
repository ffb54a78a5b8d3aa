"""Scorer protocol and shared helpers.

Defines the interface that every signal scorer implements.  The scanner
applies one scorer to every symbol, so it never needs to know which
indicator weighting produced a signal.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from pulse.risk.tiers import RiskLevel
from pulse.strategy.models import BUY, Signal


@runtime_checkable
class ScorerProtocol(Protocol):
    """Interface that all signal scorers must satisfy."""

    name: str
    min_history: int
    last_insight: dict

    def score(
        self,
        symbol: str,
        closes: list[float],
        highs: list[float],
        lows: list[float],
        risk_level: RiskLevel,
        now: Optional[datetime] = None,
    ) -> Optional[Signal]:
        """Score the latest bar and return a Signal or None."""
        ...


def exit_prices(
    entry_price: float,
    direction: str,
    stop_loss_pct: float,
    take_profit_pct: float,
) -> tuple[float, float]:
    """Return ``(stop_loss_price, take_profit_price)`` for a signal.

    Percentages are positive magnitudes (1.0 == 1 %).
    """
    sl = stop_loss_pct / 100.0
    tp = take_profit_pct / 100.0
    if direction == BUY:
        return entry_price * (1 - sl), entry_price * (1 + tp)
    return entry_price * (1 + sl), entry_price * (1 - tp)
