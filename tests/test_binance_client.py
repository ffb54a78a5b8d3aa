"""Tests for pulse.market.binance_client — REST seed with mocked HTTP responses."""

import time

import httpx
import pytest

from pulse.config import Config
from pulse.market.binance_client import BinanceClient
from pulse.market.models import Candle


def _make_config() -> Config:
    return Config(
        binance_rest_url="https://api.binance.test/",
        binance_ws_url="wss://stream.binance.test/ws",
        symbols=("BTCUSDT",),
        strategy="confluence",
        risk_level="conservative",
        series_capacity=200,
        seed_candles=100,
        default_leverage=10,
        default_margin=1000.0,
        max_open_positions=5,
        max_active_signals=10,
        signal_ttl_seconds=300,
        log_level="INFO",
        health_port=8080,
    )


# ── Mock Binance responses ──────────────────────────────────────────────

MOCK_KLINES_RESPONSE = [
    [1700000000000, "50000.00", "50100.00", "49900.00", "50050.00", "12.5",
     1700000059999, "625000.0", 100, "6.0", "300000.0", "0"],
    [1700000060000, "50050.00", "50200.00", "50000.00", "50150.00", "10.1",
     1700000119999, "505000.0", 90, "5.0", "250000.0", "0"],
]


# ── Tests ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_parse_klines(monkeypatch):
    """Candle fields populated from the kline array rows."""
    client = BinanceClient(_make_config())
    captured = {}

    async def _mock_get(self, url, *, params=None, timeout=None):
        captured["url"] = url
        captured["params"] = params
        return httpx.Response(200, json=MOCK_KLINES_RESPONSE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_klines("btcusdt", "1m", limit=2)
    assert captured["url"] == "https://api.binance.test/api/v3/klines"
    assert captured["params"] == {"symbol": "BTCUSDT", "interval": "1m", "limit": 2}
    assert len(candles) == 2
    c = candles[0]
    assert isinstance(c, Candle)
    assert c.open_time == 1700000000000
    assert c.open == pytest.approx(50000.0)
    assert c.high == pytest.approx(50100.0)
    assert c.low == pytest.approx(49900.0)
    assert c.close == pytest.approx(50050.0)
    assert c.closed is True


@pytest.mark.asyncio
async def test_in_progress_bar_not_closed(monkeypatch):
    """The trailing row whose close time is still ahead is the live bar."""
    client = BinanceClient(_make_config())
    now_ms = int(time.time() * 1000)
    open_time = now_ms - 10_000
    rows = MOCK_KLINES_RESPONSE + [
        [open_time, "50150.00", "50160.00", "50140.00", "50155.00", "1.0",
         open_time + 59_999, "50000.0", 5, "0.5", "25000.0", "0"],
    ]

    async def _mock_get(self, url, *, params=None, timeout=None):
        return httpx.Response(200, json=rows, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_klines("BTCUSDT", limit=3)
    assert [c.closed for c in candles] == [True, True, False]


@pytest.mark.asyncio
async def test_fetch_price(monkeypatch):
    client = BinanceClient(_make_config())

    async def _mock_get(self, url, *, params=None, timeout=None):
        assert url.endswith("/api/v3/ticker/price")
        return httpx.Response(
            200, json={"symbol": params["symbol"], "price": "2345.67"},
            request=httpx.Request("GET", url),
        )

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    assert await client.fetch_price("ETHUSDT") == pytest.approx(2345.67)


@pytest.mark.asyncio
async def test_retries_on_rate_limit(monkeypatch):
    """429 is retried; the following success is returned."""
    client = BinanceClient(_make_config(), retry_base_delay=0)
    statuses = [429, 200]

    async def _mock_get(self, url, *, params=None, timeout=None):
        status = statuses.pop(0)
        body = MOCK_KLINES_RESPONSE if status == 200 else {"code": -1003}
        return httpx.Response(status, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_klines("BTCUSDT")
    assert len(candles) == 2
    assert statuses == []


@pytest.mark.asyncio
async def test_gives_up_after_transport_errors(monkeypatch):
    client = BinanceClient(_make_config(), retry_base_delay=0)
    attempts = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        attempts.append(url)
        raise httpx.ConnectError("connection refused", request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.ConnectError):
        await client.fetch_klines("BTCUSDT")
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_client_error_not_retried(monkeypatch):
    client = BinanceClient(_make_config(), retry_base_delay=0)
    attempts = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        attempts.append(url)
        return httpx.Response(
            400, json={"code": -1121, "msg": "Invalid symbol."},
            request=httpx.Request("GET", url),
        )

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.HTTPStatusError):
        await client.fetch_klines("NOPEUSDT")
    assert len(attempts) == 1
