"""Market data models: typed representations of Binance kline and ticker payloads."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Candle:
    """A single one-minute candlestick bar.

    ``closed`` is False for the in-progress bar pushed by the kline stream.
    """

    open_time: int  # epoch milliseconds
    open: float
    high: float
    low: float
    close: float
    closed: bool = True


@dataclass(frozen=True)
class Tick:
    """A last-price update from the mini-ticker stream."""

    symbol: str
    price: float
    event_time: int  # epoch milliseconds
