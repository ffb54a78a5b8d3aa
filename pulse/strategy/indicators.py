"""Technical indicators: RSI, Bollinger Bands, EMA, MACD, ATR. Pure functions, no I/O.

Every function takes plain ``list[float]`` series ordered oldest-first.
Short inputs never raise: each indicator returns its neutral value
(RSI 50, all-zero bands, zero MACD, zero ATR) so scorers can treat
insufficient history as "no signal".
"""

import math

from pulse.strategy.models import BollingerBands, MACDResult

NEUTRAL_RSI = 50.0


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(closes: list[float], period: int = 14) -> float:
    """Calculate Wilder's Relative Strength Index at the last bar.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Seed average gain/loss = simple mean of the first *period*
           gains / losses.
        3. Subsequent: avg = (prev_avg × (period-1) + current) / period
        4. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    Returns 100 when the average loss is exactly zero, and
    ``NEUTRAL_RSI`` when fewer than ``period + 1`` closes are given.
    """
    if period <= 0 or len(closes) < period + 1:
        return NEUTRAL_RSI

    avg_gain = 0.0
    avg_loss = 0.0
    for i in range(1, period + 1):
        delta = closes[i] - closes[i - 1]
        if delta >= 0:
            avg_gain += delta
        else:
            avg_loss -= delta
    avg_gain /= period
    avg_loss /= period

    for i in range(period + 1, len(closes)):
        delta = closes[i] - closes[i - 1]
        gain = delta if delta > 0 else 0.0
        loss = -delta if delta < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    closes: list[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerBands:
    """Calculate Bollinger Bands over the last *period* closes.

    Middle = mean(close), σ = population standard deviation (÷ N).
    Upper / lower = middle ± *std_dev* × σ.

    Returns all-zero bands when fewer than *period* closes are given.
    """
    if period <= 0 or len(closes) < period:
        return BollingerBands(upper=0.0, middle=0.0, lower=0.0)

    window = closes[-period:]
    mean = sum(window) / period
    variance = sum((x - mean) ** 2 for x in window) / period
    sigma = math.sqrt(variance)

    return BollingerBands(
        upper=mean + std_dev * sigma,
        middle=mean,
        lower=mean - std_dev * sigma,
    )


# ── EMA ──────────────────────────────────────────────────────────────────


def calculate_ema(series: list[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    ``EMA[i] = value[i] × k + EMA[i-1] × (1 - k)`` with
    ``k = 2 / (period + 1)``, seeded with the first element.

    Returns a list the same length as *series* (empty for empty input).
    """
    if not series:
        return []

    k = 2.0 / (period + 1)
    ema = [series[0]]
    for value in series[1:]:
        ema.append(value * k + ema[-1] * (1 - k))
    return ema


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    closes: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDResult:
    """Calculate MACD line, signal line and histogram at the last bar.

    macd_line   = EMA(fast) - EMA(slow), pointwise
    signal_line = EMA(macd_line, signal)
    histogram   = macd_line - signal_line

    ``prev_histogram`` is the histogram one bar earlier, used to judge
    whether momentum is accelerating.  Needs ``slow + signal`` closes;
    shorter input yields a zero-filled result.
    """
    if len(closes) < slow + signal:
        return MACDResult(macd=0.0, signal=0.0, histogram=0.0, prev_histogram=0.0)

    ema_fast = calculate_ema(closes, fast)
    ema_slow = calculate_ema(closes, slow)
    macd_line = [f - s for f, s in zip(ema_fast, ema_slow)]
    signal_line = calculate_ema(macd_line, signal)

    return MACDResult(
        macd=macd_line[-1],
        signal=signal_line[-1],
        histogram=macd_line[-1] - signal_line[-1],
        prev_histogram=macd_line[-2] - signal_line[-2],
    )


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_atr(
    highs: list[float],
    lows: list[float],
    closes: list[float],
    period: int = 14,
) -> float:
    """Calculate the Average True Range over the last *period* bars.

        TR = max(high - low, |high - prev_close|, |low - prev_close|)

    Returns the simple mean of the last *period* true ranges, or 0.0 when
    fewer than ``period + 1`` bars are given (a previous close is needed).
    """
    n = min(len(highs), len(lows), len(closes))
    if period <= 0 or n < period + 1:
        return 0.0

    total = 0.0
    for i in range(n - period, n):
        prev_close = closes[i - 1]
        total += max(
            highs[i] - lows[i],
            abs(highs[i] - prev_close),
            abs(lows[i] - prev_close),
        )
    return total / period
