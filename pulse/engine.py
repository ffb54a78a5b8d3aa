"""Symbol scanner: the per-symbol ingestion and scoring loop.

Seeds the symbol's rolling series from REST, then consumes the kline
stream: every completed bar is appended and scored, and any accepted
signal is published to the event bus and placed on the signal board.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pulse.events import EventBus, SignalEmitted
from pulse.market.binance_client import BinanceClient
from pulse.market.models import Candle
from pulse.market.series import RollingSeries
from pulse.market.stream import FeedStale, TickSubscription
from pulse.risk.tiers import RiskLevel
from pulse.strategy.base import ScorerProtocol
from pulse.strategy.models import Signal
from pulse.strategy.signal_board import SignalBoard

logger = logging.getLogger("pulse.engine")


class SymbolScanner:
    """Runs the ingest → indicators → score pipeline for one symbol.

    Args:
        series: The symbol's rolling series (owned by a ``SeriesRegistry``).
        client: REST client used for the historical seed.
        scorer: Scorer applied to every completed bar.
        risk_level: Tier whose filters the scorer applies.
        bus: Sink for ``SignalEmitted`` events.
        subscription_factory: ``symbol -> TickSubscription`` for klines.
        signal_board: Optional board that tracks actionable signals.
        seed_candles: Number of one-minute bars requested for the seed.
    """

    def __init__(
        self,
        series: RollingSeries,
        client: BinanceClient,
        scorer: ScorerProtocol,
        risk_level: RiskLevel,
        bus: EventBus,
        subscription_factory: Callable[[str], TickSubscription],
        signal_board: Optional[SignalBoard] = None,
        seed_candles: int = 100,
    ) -> None:
        self._series = series
        self._client = client
        self._scorer = scorer
        self._risk_level = risk_level
        self._bus = bus
        self._subscription_factory = subscription_factory
        self._board = signal_board
        self._seed_candles = seed_candles
        self._subscription: Optional[TickSubscription] = None
        self._running = False
        self.stale = False
        self.last_price: Optional[float] = None
        self.last_signal: Optional[Signal] = None
        self.candle_count = 0
        self.signal_count = 0

    @property
    def symbol(self) -> str:
        return self._series.symbol

    @property
    def series(self) -> RollingSeries:
        return self._series

    @property
    def running(self) -> bool:
        return self._running

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Seed the series with recent history.

        A network failure leaves the series empty; scoring then waits
        until enough live bars have accumulated.
        """
        try:
            candles = await self._client.fetch_klines(
                self.symbol, "1m", limit=self._seed_candles,
            )
        except Exception as exc:
            logger.warning(
                "%s: history seed failed, starting empty: %s", self.symbol, exc,
            )
            return
        self._series.extend(c for c in candles if c.closed)
        if self._series.last_close is not None:
            self.last_price = self._series.last_close
        logger.info("%s: seeded %d bars", self.symbol, len(self._series))

    async def run(self) -> None:
        """Consume the kline stream until :meth:`stop` is called."""
        self._running = True
        self._subscription = self._subscription_factory(self.symbol)
        events = self._subscription.events()
        try:
            async for item in events:
                if not self._running:
                    break
                if isinstance(item, FeedStale):
                    if not self.stale:
                        logger.warning("%s: feed stale (%s)", self.symbol, item.reason)
                    self.stale = True
                    continue
                if isinstance(item, Candle):
                    self.on_candle(item)
        finally:
            await events.aclose()
            await self._subscription.close()
            self._running = False

    async def stop(self) -> None:
        """Stop scanning and release the stream.  Safe to call repeatedly."""
        self._running = False
        if self._subscription is not None:
            await self._subscription.close()

    # ── Per-bar handling ─────────────────────────────────────────────────

    def on_candle(self, candle: Candle, now: Optional[datetime] = None) -> Optional[Signal]:
        """Handle one kline update.

        In-progress bars only refresh the last price (and invalidate
        signals price has run against).  Completed bars are scored after
        being appended, or after replacing the newest bar when it shares
        the same open time.
        """
        self.stale = False
        self.last_price = candle.close
        if self._board is not None:
            self._board.invalidate_on_price(self.symbol, candle.close)

        if not candle.closed:
            return None

        if candle.open_time != self._series.last_open_time:
            self.candle_count += 1
        self._series.update_last(candle)
        return self.evaluate(now)

    def evaluate(self, now: Optional[datetime] = None) -> Optional[Signal]:
        """Score the current series.  Publishes and returns any signal."""
        if not self._series.has_history(self._scorer.min_history):
            logger.debug(
                "%s: %d/%d bars, not scoring yet",
                self.symbol, len(self._series), self._scorer.min_history,
            )
            return None

        closes, highs, lows = self._series.snapshot()
        signal = self._scorer.score(
            self.symbol, closes, highs, lows, self._risk_level,
            now=now or datetime.now(timezone.utc),
        )
        if signal is None:
            return None

        self.last_signal = signal
        self.signal_count += 1
        if self._board is not None:
            self._board.add(signal)
        self._bus.publish(SignalEmitted(signal))
        return signal

    def status(self) -> dict:
        return {
            "symbol": self.symbol,
            "running": self._running,
            "stale": self.stale,
            "bars": len(self._series),
            "last_price": self.last_price,
            "candle_count": self.candle_count,
            "signal_count": self.signal_count,
            "last_signal_at": (
                self.last_signal.created_at.isoformat() if self.last_signal else None
            ),
            "insight": dict(getattr(self._scorer, "last_insight", {}) or {}),
        }
