"""Risk tiers: static stop-loss / take-profit and signal-acceptance thresholds.

Read-only at runtime.  The scorer consults ``min_strength`` and
``min_confirmations``; position seeding consults the percentages.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RiskLevel:
    """A named bundle of exit percentages and signal filters.

    ``stop_loss_pct`` and ``take_profit_pct`` are positive magnitudes in
    percent (1.0 == 1 %).  They set the signal's stop / target prices
    relative to entry and the monitor's PnL-on-margin exit thresholds.
    """

    id: str
    name: str
    stop_loss_pct: float
    take_profit_pct: float
    min_strength: float  # 0-100
    min_confirmations: int
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "stop_loss_pct": self.stop_loss_pct,
            "take_profit_pct": self.take_profit_pct,
            "min_strength": self.min_strength,
            "min_confirmations": self.min_confirmations,
            "description": self.description,
        }


CONSERVATIVE = RiskLevel(
    id="conservative",
    name="Conservative",
    stop_loss_pct=1.0,
    take_profit_pct=5.0,
    min_strength=75,
    min_confirmations=2,
    description="Low risk, high confidence trades",
)

MODERATE = RiskLevel(
    id="moderate",
    name="Moderate",
    stop_loss_pct=2.0,
    take_profit_pct=8.0,
    min_strength=60,
    min_confirmations=2,
    description="Balanced risk-reward ratio",
)

AGGRESSIVE = RiskLevel(
    id="aggressive",
    name="Aggressive",
    stop_loss_pct=3.0,
    take_profit_pct=12.0,
    min_strength=45,
    min_confirmations=2,
    description="High risk, maximum profit potential",
)

RISK_LEVELS: dict[str, RiskLevel] = {
    CONSERVATIVE.id: CONSERVATIVE,
    MODERATE.id: MODERATE,
    AGGRESSIVE.id: AGGRESSIVE,
}

# Exit thresholds for manually entered positions (PnL % of margin).
DEFAULT_STOP_LOSS_PCT = -3.0
DEFAULT_TAKE_PROFIT_PCT = 12.0


def get_risk_level(risk_id: str) -> RiskLevel:
    """Look up a tier by id (case-insensitive).

    Raises ``KeyError`` if the tier is not defined.
    """
    key = risk_id.strip().lower()
    if key not in RISK_LEVELS:
        raise KeyError(
            f"Unknown risk level '{risk_id}'. "
            f"Available: {', '.join(RISK_LEVELS.keys())}"
        )
    return RISK_LEVELS[key]
