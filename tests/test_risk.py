"""Tests for pulse.risk — tier table and trade calculator."""

import math

import pytest

from pulse.risk.tiers import (
    AGGRESSIVE,
    CONSERVATIVE,
    DEFAULT_STOP_LOSS_PCT,
    DEFAULT_TAKE_PROFIT_PCT,
    MODERATE,
    RISK_LEVELS,
    get_risk_level,
)
from pulse.risk.trade_calculator import (
    FEE_RATE,
    InvalidTradeParameters,
    TradeQuote,
    compute_trade,
)


class TestRiskTiers:
    @pytest.mark.parametrize(
        "tier, sl, tp, strength, confirmations",
        [
            (CONSERVATIVE, 1.0, 5.0, 75, 2),
            (MODERATE, 2.0, 8.0, 60, 2),
            (AGGRESSIVE, 3.0, 12.0, 45, 2),
        ],
    )
    def test_tier_table(self, tier, sl, tp, strength, confirmations):
        assert tier.stop_loss_pct == sl
        assert tier.take_profit_pct == tp
        assert tier.min_strength == strength
        assert tier.min_confirmations == confirmations

    def test_registry_keys(self):
        assert set(RISK_LEVELS) == {"conservative", "moderate", "aggressive"}

    def test_lookup_is_case_insensitive(self):
        assert get_risk_level("Moderate") is MODERATE
        assert get_risk_level(" AGGRESSIVE ") is AGGRESSIVE

    def test_unknown_tier_raises(self):
        with pytest.raises(KeyError, match="Unknown risk level"):
            get_risk_level("yolo")

    def test_manual_defaults(self):
        assert DEFAULT_STOP_LOSS_PCT == -3.0
        assert DEFAULT_TAKE_PROFIT_PCT == 12.0

    def test_tiers_are_frozen(self):
        with pytest.raises(AttributeError):
            CONSERVATIVE.min_strength = 10

    def test_to_dict(self):
        data = CONSERVATIVE.to_dict()
        assert data["id"] == "conservative"
        assert data["name"] == "Conservative"
        assert data["min_strength"] == 75


class TestComputeTrade:
    def test_long(self):
        quote = compute_trade(50000.0, 10, 1000.0, "long")
        assert isinstance(quote, TradeQuote)
        assert quote.size == pytest.approx(10000.0)
        assert quote.fee == pytest.approx(10.0)
        assert quote.liquidation_price == pytest.approx(45000.0)

    def test_short(self):
        quote = compute_trade(50000.0, 10, 1000.0, "short")
        assert quote.size == pytest.approx(10000.0)
        assert quote.liquidation_price == pytest.approx(55000.0)

    def test_fee_rate(self):
        quote = compute_trade(2.0, 25, 400.0, "long")
        assert quote.fee == pytest.approx(10000.0 * FEE_RATE)

    def test_leverage_one_long_liquidates_at_zero(self):
        quote = compute_trade(100.0, 1, 50.0, "long")
        assert quote.size == pytest.approx(50.0)
        assert quote.liquidation_price == pytest.approx(0.0)

    def test_max_leverage_accepted(self):
        quote = compute_trade(100.0, 50, 10.0, "short")
        assert quote.liquidation_price == pytest.approx(102.0)

    @pytest.mark.parametrize("leverage", [0, 0.5, 51, 100])
    def test_leverage_out_of_range(self, leverage):
        with pytest.raises(InvalidTradeParameters, match="leverage"):
            compute_trade(100.0, leverage, 10.0, "long")

    @pytest.mark.parametrize("margin", [0.0, -5.0, math.nan, math.inf])
    def test_bad_margin(self, margin):
        with pytest.raises(InvalidTradeParameters, match="margin"):
            compute_trade(100.0, 10, margin, "long")

    @pytest.mark.parametrize("entry", [0.0, -1.0, math.nan])
    def test_bad_entry_price(self, entry):
        with pytest.raises(InvalidTradeParameters, match="entry_price"):
            compute_trade(entry, 10, 100.0, "long")

    def test_bad_side(self):
        with pytest.raises(InvalidTradeParameters, match="side"):
            compute_trade(100.0, 10, 100.0, "sideways")

    def test_is_value_error(self):
        assert issubclass(InvalidTradeParameters, ValueError)
