"""Trade calculator: position size, liquidation price and fee. Pure math, no I/O.

Used for manual order entry and for signal-derived trades.  Balance checks
belong to the caller; the calculator never inspects account state.
"""

import math
from dataclasses import dataclass

from pulse.strategy.models import LONG, SHORT

MIN_LEVERAGE = 1
MAX_LEVERAGE = 50
FEE_RATE = 0.001  # 0.1 % of notional


class InvalidTradeParameters(ValueError):
    """Leverage, margin, entry price or side outside the allowed bounds."""


@dataclass(frozen=True)
class TradeQuote:
    """Derived fields for a leveraged position."""

    size: float
    liquidation_price: float
    fee: float


def compute_trade(
    entry_price: float,
    leverage: float,
    margin: float,
    side: str,
) -> TradeQuote:
    """Derive size, liquidation price and fee for a leveraged trade.

    Formula::

        size        = margin × leverage
        fee         = size × 0.001
        liquidation = entry × (1 - 1/leverage)   (long)
                      entry × (1 + 1/leverage)   (short)

    Raises:
        InvalidTradeParameters: leverage outside [1, 50], non-positive
            margin or entry price, or an unknown side.
    """
    if side not in (LONG, SHORT):
        raise InvalidTradeParameters(f"side must be 'long' or 'short', got '{side}'")
    if not MIN_LEVERAGE <= leverage <= MAX_LEVERAGE:
        raise InvalidTradeParameters(
            f"leverage must be between {MIN_LEVERAGE} and {MAX_LEVERAGE}, got {leverage}"
        )
    if not math.isfinite(margin) or margin <= 0:
        raise InvalidTradeParameters(f"margin must be positive, got {margin}")
    if not math.isfinite(entry_price) or entry_price <= 0:
        raise InvalidTradeParameters(f"entry_price must be positive, got {entry_price}")

    size = margin * leverage
    if side == LONG:
        liquidation = entry_price * (1 - 1 / leverage)
    else:
        liquidation = entry_price * (1 + 1 / leverage)

    return TradeQuote(
        size=size,
        liquidation_price=liquidation,
        fee=size * FEE_RATE,
    )
