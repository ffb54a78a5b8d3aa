"""Binance public REST API async client.

Fetches the historical kline window used to seed each symbol's rolling
series before live candles arrive.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from pulse.config import Config
from pulse.market.models import Candle

logger = logging.getLogger("pulse.binance")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {418, 429, 502, 503, 504}


class BinanceClient:
    """Async client wrapping the public Binance spot REST endpoints."""

    def __init__(self, config: Config, retry_base_delay: float = _RETRY_BASE_DELAY) -> None:
        self._base_url = config.binance_rest_url.rstrip("/")
        self._retry_base_delay = retry_base_delay

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors and rate limits.  Non-retryable
        errors are raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        timeout=10.0,
                        **kwargs,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = self._retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "Binance %s %s returned %d, retry %d/%d in %.1fs",
                        method.upper(), url, resp.status_code,
                        attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = self._retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Binance %s %s transport error (%s), retry %d/%d in %.1fs",
                    method.upper(), url, exc,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Klines ───────────────────────────────────────────────────────────

    async def fetch_klines(
        self,
        symbol: str,
        interval: str = "1m",
        limit: int = 100,
    ) -> list[Candle]:
        """Fetch recent klines for *symbol*.

        Args:
            symbol: e.g. ``"BTCUSDT"``
            interval: Binance interval, e.g. ``"1m"``
            limit: number of bars (max 1000)

        Returns:
            List of ``Candle`` objects ordered oldest-first.  The last row
            Binance returns is usually the in-progress bar; it is marked
            ``closed=False`` because its close time is still in the future.
        """
        url = f"{self._base_url}/api/v3/klines"
        params = {"symbol": symbol.upper(), "interval": interval, "limit": limit}

        resp = await self._request_with_retry("get", url, params=params)

        rows = resp.json()
        now_ms = int(time.time() * 1000)
        candles: list[Candle] = []
        for row in rows:
            candles.append(
                Candle(
                    open_time=int(row[0]),
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                    closed=int(row[6]) < now_ms,
                )
            )
        return candles

    async def fetch_price(self, symbol: str) -> float:
        """Return the latest traded price for *symbol*."""
        url = f"{self._base_url}/api/v3/ticker/price"
        resp = await self._request_with_retry("get", url, params={"symbol": symbol.upper()})
        return float(resp.json()["price"])
