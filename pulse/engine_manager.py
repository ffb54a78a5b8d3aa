"""EngineManager — orchestrates one SymbolScanner per scanned symbol.

Every symbol gets its own rolling series (held by a ``SeriesRegistry``)
and its own ``SymbolScanner``.  All scanners share one scorer type, one
risk tier, the event bus and the signal board.  Scanners run as
concurrent ``asyncio`` tasks and can be stopped individually or en masse.
"""

import asyncio
import logging
from functools import partial
from typing import Callable, Optional

from pulse.config import Config
from pulse.engine import SymbolScanner
from pulse.events import EventBus
from pulse.market.binance_client import BinanceClient
from pulse.market.series import SeriesRegistry
from pulse.market.stream import TickSubscription, kline_subscription
from pulse.risk.tiers import get_risk_level
from pulse.strategy.registry import get_scorer
from pulse.strategy.signal_board import SignalBoard

logger = logging.getLogger("pulse.engine_manager")


class EngineManager:
    """Lifecycle manager for the per-symbol scanners.

    Args:
        config: Global ``Config`` loaded from ``.env``.
        client: Shared ``BinanceClient`` used for history seeds.
        bus: Event sink shared with the position book and API.
        signal_board: Board that collects emitted signals.
        subscription_factory: ``symbol -> TickSubscription`` for klines.
            Defaults to the live ``<symbol>@kline_1m`` stream.
        symbols: Overrides ``config.symbols`` (CLI ``--symbols``).
        strategy: Overrides ``config.strategy``.
        risk_level: Overrides ``config.risk_level``.
    """

    def __init__(
        self,
        config: Config,
        client: BinanceClient,
        bus: EventBus,
        signal_board: SignalBoard,
        subscription_factory: Optional[Callable[[str], TickSubscription]] = None,
        symbols: Optional[list[str]] = None,
        strategy: Optional[str] = None,
        risk_level: Optional[str] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._bus = bus
        self._board = signal_board
        self._subscription_factory = subscription_factory or partial(
            kline_subscription, config.binance_ws_url,
        )
        self._symbols = [s.upper() for s in (symbols or config.symbols)]
        self.strategy = strategy or config.strategy
        # Resolve eagerly so an unknown tier fails at startup.
        self.risk_level = get_risk_level(risk_level or config.risk_level)
        self._series = SeriesRegistry(capacity=config.series_capacity)
        self._scanners: dict[str, SymbolScanner] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def scanners(self) -> dict[str, SymbolScanner]:
        """Map of symbol → ``SymbolScanner``."""
        return dict(self._scanners)

    @property
    def symbols(self) -> list[str]:
        return list(self._scanners.keys())

    @property
    def series(self) -> SeriesRegistry:
        return self._series

    def build_scanners(self) -> None:
        """Instantiate a ``SymbolScanner`` per configured symbol.

        Call **once** before :meth:`run_all`.  Each scanner gets a fresh
        scorer instance from the strategy registry.
        """
        for symbol in self._symbols:
            if symbol in self._scanners:
                continue
            scanner = SymbolScanner(
                series=self._series.create(symbol),
                client=self._client,
                scorer=get_scorer(self.strategy),
                risk_level=self.risk_level,
                bus=self._bus,
                subscription_factory=self._subscription_factory,
                signal_board=self._board,
                seed_candles=self._config.seed_candles,
            )
            self._scanners[symbol] = scanner
            logger.info(
                "Registered scanner %s → %s (%s)",
                symbol, self.strategy, self.risk_level.name,
            )

    async def initialize_all(self) -> None:
        """Seed every scanner's series concurrently."""
        await asyncio.gather(*(s.initialize() for s in self._scanners.values()))

    async def run_all(self) -> None:
        """Launch all scanners concurrently and wait for them to finish."""
        if not self._scanners:
            self.build_scanners()

        await self.initialize_all()

        self._tasks = {
            symbol: asyncio.create_task(scanner.run(), name=f"scanner-{symbol}")
            for symbol, scanner in self._scanners.items()
        }

        for symbol, task in list(self._tasks.items()):
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Scanner %s cancelled.", symbol)
            except Exception as exc:
                logger.error("Scanner %s crashed: %s", symbol, exc)

    async def stop_all(self) -> None:
        """Signal every scanner to stop gracefully."""
        for symbol in list(self._scanners):
            await self._scanners[symbol].stop()
            logger.info("Stop signal sent to scanner %s.", symbol)

    async def stop_symbol(self, symbol: str) -> bool:
        """Stop one scanner and drop its series.

        Returns ``False`` if the symbol is not being scanned.
        """
        symbol = symbol.upper()
        scanner = self._scanners.pop(symbol, None)
        if scanner is None:
            return False
        await scanner.stop()
        self._series.evict(symbol)
        logger.info("Scanner %s stopped and series evicted.", symbol)
        return True

    def get_status(self, symbol: Optional[str] = None) -> dict:
        """Return aggregated or per-symbol scanner status."""
        if symbol is not None:
            scanner = self._scanners.get(symbol.upper())
            if scanner is None:
                return {"error": f"Unknown symbol: {symbol}"}
            return scanner.status()

        return {
            "strategy": self.strategy,
            "risk_level": self.risk_level.id,
            "scanners": {s: sc.status() for s, sc in self._scanners.items()},
        }
