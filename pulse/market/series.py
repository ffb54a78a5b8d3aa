"""Rolling price series: bounded per-symbol close/high/low windows.

Each scanned symbol owns one ``RollingSeries``.  Appending beyond the
capacity evicts the oldest bar, so indicator computations always run over
at most ``capacity`` observations.
"""

import logging
from collections import deque
from typing import Iterable

from pulse.market.models import Candle

logger = logging.getLogger("pulse.series")

DEFAULT_CAPACITY = 200


class RollingSeries:
    """Fixed-capacity FIFO window of closes, highs and lows for one symbol.

    Args:
        symbol: Trading pair, e.g. ``"BTCUSDT"``.
        capacity: Maximum number of bars retained.
    """

    def __init__(self, symbol: str, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.symbol = symbol
        self.capacity = capacity
        self._closes: deque[float] = deque(maxlen=capacity)
        self._highs: deque[float] = deque(maxlen=capacity)
        self._lows: deque[float] = deque(maxlen=capacity)
        self._last_open_time: int | None = None

    def __len__(self) -> int:
        return len(self._closes)

    @property
    def last_close(self) -> float | None:
        """Most recent close, or ``None`` when the series is empty."""
        return self._closes[-1] if self._closes else None

    @property
    def last_open_time(self) -> int | None:
        return self._last_open_time

    def append(self, candle: Candle) -> None:
        """Append a bar, evicting the oldest one once at capacity."""
        self._closes.append(candle.close)
        self._highs.append(candle.high)
        self._lows.append(candle.low)
        self._last_open_time = candle.open_time

    def extend(self, candles: Iterable[Candle]) -> None:
        for candle in candles:
            self.append(candle)

    def update_last(self, candle: Candle) -> None:
        """Replace the newest bar in place (same open time, fresher prices).

        Falls back to :meth:`append` when the series is empty or the bar
        belongs to a new period.
        """
        if not self._closes or candle.open_time != self._last_open_time:
            self.append(candle)
            return
        self._closes[-1] = candle.close
        self._highs[-1] = candle.high
        self._lows[-1] = candle.low

    def has_history(self, required: int) -> bool:
        """True if at least *required* bars are available."""
        return len(self._closes) >= required

    def snapshot(self) -> tuple[list[float], list[float], list[float]]:
        """Return ``(closes, highs, lows)`` ordered oldest-first."""
        return list(self._closes), list(self._highs), list(self._lows)


class SeriesRegistry:
    """Owns the ``RollingSeries`` of every scanned symbol, addressed by key."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._capacity = capacity
        self._series: dict[str, RollingSeries] = {}

    @property
    def symbols(self) -> list[str]:
        return list(self._series.keys())

    def create(self, symbol: str) -> RollingSeries:
        """Create (or return the existing) series for *symbol*."""
        series = self._series.get(symbol)
        if series is None:
            series = RollingSeries(symbol, capacity=self._capacity)
            self._series[symbol] = series
            logger.debug("Created series for %s (capacity=%d)", symbol, self._capacity)
        return series

    def get(self, symbol: str) -> RollingSeries:
        """Return the series for *symbol*.

        Raises ``KeyError`` if the symbol has not been created.
        """
        return self._series[symbol]

    def evict(self, symbol: str) -> None:
        """Drop the series for *symbol*.  Unknown symbols are ignored."""
        if self._series.pop(symbol, None) is not None:
            logger.debug("Evicted series for %s", symbol)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._series
