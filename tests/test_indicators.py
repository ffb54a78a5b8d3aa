"""Tests for pulse.strategy.indicators — RSI, Bollinger, EMA, MACD, ATR."""

import math

import pytest

from pulse.strategy.indicators import (
    NEUTRAL_RSI,
    calculate_atr,
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
)


# ── RSI ──────────────────────────────────────────────────────────────────


class TestRSI:
    def test_short_series_is_neutral(self):
        assert calculate_rsi([100.0] * 14, 14) == NEUTRAL_RSI

    def test_only_gains_is_100(self):
        closes = [float(i) for i in range(100, 115)]
        assert calculate_rsi(closes, 14) == 100.0

    def test_only_losses_is_0(self):
        closes = [float(i) for i in range(115, 100, -1)]
        assert calculate_rsi(closes, 14) == pytest.approx(0.0)

    def test_balanced_moves_is_50(self):
        closes = [10.0, 11.0] * 7 + [10.0]
        assert len(closes) == 15
        assert calculate_rsi(closes, 14) == pytest.approx(50.0)

    def test_flat_series_reads_as_no_losses(self):
        assert calculate_rsi([100.0] * 30, 14) == 100.0

    def test_wilder_smoothing_after_seed(self):
        # Seed: 7 gains of 1 and 7 losses of 1 -> avg 0.5 / 0.5.
        # One more +2 bar: gain = (0.5*13 + 2)/14, loss = 0.5*13/14.
        closes = [10.0, 11.0] * 7 + [10.0, 12.0]
        avg_gain = (0.5 * 13 + 2) / 14
        avg_loss = (0.5 * 13) / 14
        expected = 100 - 100 / (1 + avg_gain / avg_loss)
        assert calculate_rsi(closes, 14) == pytest.approx(expected)

    def test_stays_in_range(self):
        closes = [100 + math.sin(i / 3) * 5 for i in range(80)]
        rsi = calculate_rsi(closes)
        assert 0.0 <= rsi <= 100.0


# ── Bollinger Bands ──────────────────────────────────────────────────────


class TestBollinger:
    def test_short_series_is_zero(self):
        bands = calculate_bollinger([100.0] * 19, 20)
        assert (bands.upper, bands.middle, bands.lower) == (0.0, 0.0, 0.0)

    def test_flat_series_collapses_bands(self):
        bands = calculate_bollinger([50.0] * 25, 20)
        assert bands.upper == pytest.approx(50.0)
        assert bands.middle == pytest.approx(50.0)
        assert bands.lower == pytest.approx(50.0)

    def test_population_std_dev(self):
        closes = [float(i) for i in range(1, 21)]
        bands = calculate_bollinger(closes, 20, 2.0)
        sigma = math.sqrt(33.25)  # (n^2 - 1) / 12 for 1..20
        assert bands.middle == pytest.approx(10.5)
        assert bands.upper == pytest.approx(10.5 + 2 * sigma)
        assert bands.lower == pytest.approx(10.5 - 2 * sigma)

    def test_uses_last_window_only(self):
        closes = [1000.0] * 10 + [100.0] * 20
        bands = calculate_bollinger(closes, 20)
        assert bands.middle == pytest.approx(100.0)

    def test_ordering(self):
        closes = [100 + (i % 5) for i in range(40)]
        bands = calculate_bollinger(closes)
        assert bands.lower <= bands.middle <= bands.upper


# ── EMA ──────────────────────────────────────────────────────────────────


class TestEMA:
    def test_empty(self):
        assert calculate_ema([], 9) == []

    def test_seeded_with_first_value(self):
        assert calculate_ema([1.0, 2.0, 3.0], 3) == pytest.approx([1.0, 1.5, 2.25])

    def test_same_length_as_input(self):
        assert len(calculate_ema([1.0] * 37, 9)) == 37


# ── MACD ─────────────────────────────────────────────────────────────────


class TestMACD:
    def test_short_series_is_zero(self):
        result = calculate_macd([100.0] * 34)
        assert result.macd == 0.0
        assert result.signal == 0.0
        assert result.histogram == 0.0
        assert result.prev_histogram == 0.0

    def test_flat_series_is_zero(self):
        result = calculate_macd([100.0] * 60)
        assert result.macd == pytest.approx(0.0)
        assert result.histogram == pytest.approx(0.0)

    def test_rising_series_is_positive(self):
        result = calculate_macd([100.0 + i for i in range(60)])
        assert result.macd > 0

    def test_spike_accelerates_histogram(self):
        result = calculate_macd([100.0] * 49 + [120.0])
        assert result.histogram > 0
        assert result.histogram > result.prev_histogram
        assert result.prev_histogram == pytest.approx(0.0)


# ── ATR ──────────────────────────────────────────────────────────────────


class TestATR:
    def test_short_series_is_zero(self):
        assert calculate_atr([1.0] * 14, [1.0] * 14, [1.0] * 14, 14) == 0.0

    def test_constant_range(self):
        closes = [100.0] * 20
        highs = [101.0] * 20
        lows = [99.0] * 20
        assert calculate_atr(highs, lows, closes, 14) == pytest.approx(2.0)

    def test_gap_uses_previous_close(self):
        closes = [100.0] * 15 + [110.0]
        highs = [100.0] * 15 + [111.0]
        lows = [100.0] * 15 + [109.0]
        # Last TR = |111 - 100| = 11, others 0.
        assert calculate_atr(highs, lows, closes, 14) == pytest.approx(11.0 / 14)
