"""PulseTrade — application entry point.

Boots the FastAPI internal server and provides the CLI entry point that
runs the per-symbol scanners alongside it.
"""

import logging

from fastapi import FastAPI

from pulse.api.routers import router

app = FastAPI(title="PulseTrade Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("pulse")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments, wire the core and run it."""
    import argparse
    import asyncio
    from functools import partial

    from pulse.api.routers import configure_routers, record_event
    from pulse.config import load_config
    from pulse.engine_manager import EngineManager
    from pulse.events import EventBus
    from pulse.market.binance_client import BinanceClient
    from pulse.market.stream import mini_ticker_subscription
    from pulse.monitor.book import PositionBook
    from pulse.risk.tiers import RISK_LEVELS
    from pulse.strategy.registry import STRATEGY_REGISTRY
    from pulse.strategy.signal_board import SignalBoard

    parser = argparse.ArgumentParser(description="PulseTrade market scanner")
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run scanners without the API server",
    )
    parser.add_argument(
        "--symbols",
        help="Comma-separated symbols to scan (default: SYMBOLS from .env)",
    )
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGY_REGISTRY),
        help="Scoring strategy (default: STRATEGY from .env)",
    )
    parser.add_argument(
        "--risk-level",
        choices=sorted(RISK_LEVELS),
        help="Risk tier (default: RISK_LEVEL from .env)",
    )
    args = parser.parse_args()

    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    symbols = None
    if args.symbols:
        symbols = [s.strip() for s in args.symbols.split(",") if s.strip()]

    bus = EventBus()
    bus.add_listener(record_event)
    board = SignalBoard(
        ttl_seconds=config.signal_ttl_seconds,
        max_signals=config.max_active_signals,
    )
    client = BinanceClient(config)
    book = PositionBook(
        bus,
        subscription_factory=partial(mini_ticker_subscription, config.binance_ws_url),
        max_open_positions=config.max_open_positions,
        default_leverage=config.default_leverage,
        default_margin=config.default_margin,
    )
    manager = EngineManager(
        config=config,
        client=client,
        bus=bus,
        signal_board=board,
        symbols=symbols,
        strategy=args.strategy,
        risk_level=args.risk_level,
    )
    manager.build_scanners()

    configure_routers(
        engine_manager=manager,
        book=book,
        signal_board=board,
        client=client,
    )

    if args.engine_only:
        asyncio.run(_run_engines_only(manager, book))
    else:
        asyncio.run(_run_engine_manager(manager, book, port=config.health_port))


def _install_shutdown(manager, book, server=None) -> None:
    """Stop scanners and close open positions on SIGINT / SIGTERM."""
    import asyncio
    import signal

    loop = asyncio.get_running_loop()

    async def _shutdown():
        logger.info("Shutdown signal received, stopping scanners and closing positions.")
        await manager.stop_all()
        await book.close_all()
        if server is not None:
            server.should_exit = True

    shutdown_tasks: list = []

    def handle_shutdown():
        if not shutdown_tasks:
            shutdown_tasks.append(loop.create_task(_shutdown()))

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_shutdown)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler.
            signal.signal(sig, lambda signum, frame: handle_shutdown())


async def _run_engine_manager(manager, book, port: int = 8080) -> None:
    """Start the API server and all scanners concurrently."""
    import asyncio
    import uvicorn

    logger.info(
        "Starting PulseTrade: %s / %s on %d symbol(s).",
        manager.strategy, manager.risk_level.name, len(manager.symbols),
    )

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)
    _install_shutdown(manager, book, server)

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        server.serve(),
        manager.run_all(),
        return_exceptions=True,
    )
    logger.info("PulseTrade stopped. Results: %s", results)


async def _run_engines_only(manager, book) -> None:
    """Run scanners without starting the API server."""
    _install_shutdown(manager, book)
    logger.info(
        "Starting PulseTrade scanners (no API) on %d symbol(s).",
        len(manager.symbols),
    )
    await manager.run_all()
    logger.info("PulseTrade scanners stopped.")


if __name__ == "__main__":
    _run_cli()
