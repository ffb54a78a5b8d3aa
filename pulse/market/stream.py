"""Live Binance stream subscriptions over websockets.

A ``TickSubscription`` wraps one per-symbol websocket stream
(``<symbol>@miniTicker`` or ``<symbol>@kline_1m``).  Iterating
:meth:`TickSubscription.events` yields parsed ``Tick`` / ``Candle`` objects
in arrival order.  Malformed payloads are dropped.  When the connection
drops, a ``FeedStale`` marker is yielded and the subscription reconnects
with exponential backoff until :meth:`TickSubscription.close` is called.
"""

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Union

import websockets
from websockets.exceptions import WebSocketException

from pulse.market.models import Candle, Tick

logger = logging.getLogger("pulse.stream")

# Reconnect settings
_RECONNECT_BASE_DELAY = 1.0  # seconds; doubles each attempt
_RECONNECT_MAX_DELAY = 60.0


class MalformedTick(ValueError):
    """A stream payload that does not parse to a finite price."""


@dataclass(frozen=True)
class FeedStale:
    """Yielded when the underlying connection drops; data is stale until the next item."""

    symbol: str
    reason: str


StreamItem = Union[Tick, Candle, FeedStale]


def _finite(raw, field_name: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedTick(f"{field_name} is not numeric: {raw!r}") from exc
    if not math.isfinite(value):
        raise MalformedTick(f"{field_name} is not finite: {raw!r}")
    return value


def parse_mini_ticker(payload: dict) -> Tick:
    """Parse a Binance ``24hrMiniTicker`` payload into a ``Tick``.

    Raises ``MalformedTick`` if the last price is missing or not finite.
    """
    if not isinstance(payload, dict) or "c" not in payload:
        raise MalformedTick(f"not a mini-ticker payload: {payload!r}")
    price = _finite(payload["c"], "c")
    if price <= 0:
        raise MalformedTick(f"non-positive price: {price}")
    return Tick(
        symbol=str(payload.get("s", "")),
        price=price,
        event_time=int(payload.get("E", 0)),
    )


def parse_kline(payload: dict) -> Candle:
    """Parse a Binance ``kline`` payload into a ``Candle``.

    ``closed`` mirrors the ``x`` flag (False while the bar is in progress).
    Raises ``MalformedTick`` on missing or non-finite OHLC fields.
    """
    k = payload.get("k") if isinstance(payload, dict) else None
    if not isinstance(k, dict):
        raise MalformedTick(f"not a kline payload: {payload!r}")
    try:
        open_time = int(k["t"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedTick(f"kline open time missing: {k!r}") from exc
    return Candle(
        open_time=open_time,
        open=_finite(k.get("o"), "o"),
        high=_finite(k.get("h"), "h"),
        low=_finite(k.get("l"), "l"),
        close=_finite(k.get("c"), "c"),
        closed=bool(k.get("x", False)),
    )


class TickSubscription:
    """One reconnecting websocket subscription for a single symbol.

    Args:
        url: Full stream URL, e.g.
            ``wss://stream.binance.com:9443/ws/btcusdt@miniTicker``.
        symbol: Symbol the stream belongs to (used in logs and markers).
        parser: Converts a decoded JSON payload into a stream item.
        connect: websocket connect factory (``websockets.connect``).
    """

    def __init__(
        self,
        url: str,
        symbol: str,
        parser: Callable[[dict], Union[Tick, Candle]],
        connect: Callable = websockets.connect,
        reconnect_base_delay: float = _RECONNECT_BASE_DELAY,
        reconnect_max_delay: float = _RECONNECT_MAX_DELAY,
    ) -> None:
        self.url = url
        self.symbol = symbol
        self._parser = parser
        self._connect = connect
        self._base_delay = reconnect_base_delay
        self._max_delay = reconnect_max_delay
        self._ws = None
        self._closed = False
        self._wake = asyncio.Event()
        self.dropped_messages = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Release the connection.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._wake.set()
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as exc:
                logger.debug("%s: error while closing stream: %s", self.symbol, exc)
        logger.debug("%s: subscription closed (%s)", self.symbol, self.url)

    async def events(self) -> AsyncIterator[StreamItem]:
        """Yield parsed items until closed, reconnecting on disconnect."""
        delay = self._base_delay
        while not self._closed:
            reason: Optional[str] = None
            try:
                async with self._connect(
                    self.url,
                    ping_interval=20,
                    ping_timeout=45,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    delay = self._base_delay
                    logger.info("%s: stream connected (%s)", self.symbol, self.url)
                    async for raw in ws:
                        if self._closed:
                            return
                        item = self._decode(raw)
                        if item is not None:
                            yield item
                reason = "connection closed"
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                reason = f"{type(exc).__name__}: {exc}"
            finally:
                self._ws = None

            if self._closed:
                return
            logger.warning(
                "%s: stream dropped (%s), reconnecting in %.1fs",
                self.symbol, reason, delay,
            )
            yield FeedStale(symbol=self.symbol, reason=reason)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            delay = min(delay * 2, self._max_delay)

    def _decode(self, raw) -> Optional[Union[Tick, Candle]]:
        try:
            payload = json.loads(raw)
            return self._parser(payload)
        except (MalformedTick, ValueError, TypeError) as exc:
            self.dropped_messages += 1
            logger.debug("%s: dropped malformed message: %s", self.symbol, exc)
            return None


def mini_ticker_subscription(ws_base_url: str, symbol: str, **kwargs) -> TickSubscription:
    """Last-price subscription, used by position monitors."""
    url = f"{ws_base_url.rstrip('/')}/{symbol.lower()}@miniTicker"
    return TickSubscription(url, symbol, parse_mini_ticker, **kwargs)


def kline_subscription(
    ws_base_url: str,
    symbol: str,
    interval: str = "1m",
    **kwargs,
) -> TickSubscription:
    """Candle subscription, used by the symbol scanners."""
    url = f"{ws_base_url.rstrip('/')}/{symbol.lower()}@kline_{interval}"
    return TickSubscription(url, symbol, parse_kline, **kwargs)
