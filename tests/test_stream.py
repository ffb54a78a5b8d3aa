"""Tests for pulse.market.stream — payload parsing and the reconnecting subscription."""

import asyncio
import json
import math

import pytest

from pulse.market.models import Candle, Tick
from pulse.market.stream import (
    FeedStale,
    MalformedTick,
    TickSubscription,
    kline_subscription,
    mini_ticker_subscription,
    parse_kline,
    parse_mini_ticker,
)


# ── Fake websocket ───────────────────────────────────────────────────────


class _FakeSocket:
    """Async-iterable stand-in for a websockets connection."""

    def __init__(self, messages):
        self._messages = list(messages)
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for message in self._messages:
            if self.closed:
                return
            yield message

    async def close(self):
        self.closed = True


def _connect_factory(*connections):
    """Return a connect() replacement that hands out *connections* in order."""
    remaining = list(connections)
    calls = []

    def connect(url, **kwargs):
        calls.append((url, kwargs))
        conn = remaining.pop(0)
        if isinstance(conn, Exception):
            raise conn
        return conn

    connect.calls = calls
    return connect


def _ticker(price, symbol="BTCUSDT"):
    return json.dumps({"e": "24hrMiniTicker", "E": 1700000000000, "s": symbol, "c": price})


# ── Parsing ──────────────────────────────────────────────────────────────


class TestParseMiniTicker:
    def test_parses_last_price(self):
        tick = parse_mini_ticker({"s": "BTCUSDT", "c": "50123.45", "E": 1700000000000})
        assert tick == Tick(symbol="BTCUSDT", price=50123.45, event_time=1700000000000)

    @pytest.mark.parametrize("price", ["NaN", "inf", "abc", None, "0", "-1"])
    def test_rejects_bad_price(self, price):
        with pytest.raises(MalformedTick):
            parse_mini_ticker({"s": "BTCUSDT", "c": price})

    def test_rejects_missing_price(self):
        with pytest.raises(MalformedTick):
            parse_mini_ticker({"s": "BTCUSDT"})

    def test_rejects_non_dict(self):
        with pytest.raises(MalformedTick):
            parse_mini_ticker(["c", "1"])


class TestParseKline:
    def test_parses_bar(self):
        payload = {
            "e": "kline",
            "s": "ETHUSDT",
            "k": {"t": 1700000000000, "o": "1", "h": "3", "l": "0.5", "c": "2", "x": True},
        }
        candle = parse_kline(payload)
        assert candle == Candle(open_time=1700000000000, open=1.0, high=3.0, low=0.5, close=2.0)

    def test_in_progress_bar(self):
        payload = {"k": {"t": 1, "o": "1", "h": "1", "l": "1", "c": "1", "x": False}}
        assert parse_kline(payload).closed is False

    def test_rejects_non_finite(self):
        payload = {"k": {"t": 1, "o": "1", "h": "1", "l": "1", "c": "nan", "x": True}}
        with pytest.raises(MalformedTick):
            parse_kline(payload)

    def test_rejects_missing_kline(self):
        with pytest.raises(MalformedTick):
            parse_kline({"e": "kline"})


class TestSubscriptionUrls:
    def test_mini_ticker_url(self):
        sub = mini_ticker_subscription("wss://stream.example/ws/", "BTCUSDT")
        assert sub.url == "wss://stream.example/ws/btcusdt@miniTicker"
        assert sub.symbol == "BTCUSDT"

    def test_kline_url(self):
        sub = kline_subscription("wss://stream.example/ws", "ETHUSDT")
        assert sub.url == "wss://stream.example/ws/ethusdt@kline_1m"


# ── Subscription lifecycle ───────────────────────────────────────────────


class TestTickSubscription:
    @pytest.mark.asyncio
    async def test_yields_ticks_in_order_and_drops_malformed(self):
        socket = _FakeSocket([_ticker("100"), "not json", _ticker("NaN"), _ticker("101.5")])
        connect = _connect_factory(socket)
        sub = TickSubscription(
            "wss://x/btcusdt@miniTicker", "BTCUSDT", parse_mini_ticker,
            connect=connect, reconnect_base_delay=0,
        )

        prices = []
        async for item in sub.events():
            if isinstance(item, FeedStale):
                await sub.close()
                continue
            prices.append(item.price)

        assert prices == [100.0, 101.5]
        assert sub.dropped_messages == 2
        assert connect.calls[0][1]["ping_interval"] == 20

    @pytest.mark.asyncio
    async def test_disconnect_yields_stale_then_reconnects(self):
        connect = _connect_factory(
            _FakeSocket([_ticker("100")]),
            OSError("network down"),
            _FakeSocket([_ticker("102")]),
        )
        sub = TickSubscription(
            "wss://x", "BTCUSDT", parse_mini_ticker,
            connect=connect, reconnect_base_delay=0,
        )

        items = []
        async for item in sub.events():
            items.append(item)
            if isinstance(item, Tick) and item.price == 102.0:
                await sub.close()

        kinds = [type(i).__name__ for i in items]
        assert kinds == ["Tick", "FeedStale", "FeedStale", "Tick"]
        assert "network down" in items[2].reason
        assert len(connect.calls) == 3

    @pytest.mark.asyncio
    async def test_close_interrupts_reconnect_backoff(self):
        connect = _connect_factory(OSError("network down"))
        sub = TickSubscription(
            "wss://x", "BTCUSDT", parse_mini_ticker,
            connect=connect, reconnect_base_delay=30,
        )
        events = sub.events()
        assert isinstance(await events.__anext__(), FeedStale)

        pending = asyncio.ensure_future(events.__anext__())
        await asyncio.sleep(0)
        await sub.close()

        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(pending, timeout=1)
        assert len(connect.calls) == 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        socket = _FakeSocket([])
        sub = TickSubscription("wss://x", "BTCUSDT", parse_mini_ticker, connect=_connect_factory(socket))
        await sub.close()
        await sub.close()
        assert sub.closed

    @pytest.mark.asyncio
    async def test_closed_subscription_yields_nothing(self):
        sub = TickSubscription("wss://x", "BTCUSDT", parse_mini_ticker, connect=_connect_factory())
        await sub.close()
        items = [item async for item in sub.events()]
        assert items == []

    @pytest.mark.asyncio
    async def test_close_releases_open_socket(self):
        socket = _FakeSocket([_ticker("100"), _ticker("101")])
        sub = TickSubscription(
            "wss://x", "BTCUSDT", parse_mini_ticker, connect=_connect_factory(socket),
        )
        async for item in sub.events():
            assert not math.isnan(item.price)
            await sub.close()
        assert socket.closed
