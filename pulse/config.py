"""PulseTrade application configuration.

Loads .env variables into a typed config object and validates them on
startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from pulse.risk.tiers import RISK_LEVELS
from pulse.strategy.registry import STRATEGY_REGISTRY

DEFAULT_SYMBOLS = "BTCUSDT,ETHUSDT,SOLUSDT,DOGEUSDT,XRPUSDT,BNBUSDT"


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    binance_rest_url: str
    binance_ws_url: str
    symbols: tuple[str, ...]
    strategy: str  # scorer registry key, e.g. "confluence"
    risk_level: str  # "conservative", "moderate" or "aggressive"
    series_capacity: int
    seed_candles: int
    default_leverage: float
    default_margin: float
    max_open_positions: int
    max_active_signals: int
    signal_ttl_seconds: int
    log_level: str
    health_port: int


def _parse_symbols(raw: str) -> tuple[str, ...]:
    return tuple(s.strip().upper() for s in raw.split(",") if s.strip())


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` naming the offending variable when a value is
    missing or out of range.
    """
    load_dotenv(dotenv_path=env_path)

    symbols = _parse_symbols(os.environ.get("SYMBOLS", DEFAULT_SYMBOLS))
    if not symbols:
        raise ValueError("SYMBOLS must name at least one symbol")

    strategy = os.environ.get("STRATEGY", "confluence").strip().lower()
    if strategy not in STRATEGY_REGISTRY:
        raise ValueError(
            f"STRATEGY '{strategy}' is not one of: {', '.join(STRATEGY_REGISTRY)}"
        )

    risk_level = os.environ.get("RISK_LEVEL", "conservative").strip().lower()
    if risk_level not in RISK_LEVELS:
        raise ValueError(
            f"RISK_LEVEL '{risk_level}' is not one of: {', '.join(RISK_LEVELS)}"
        )

    config = Config(
        binance_rest_url=os.environ.get("BINANCE_REST_URL", "https://api.binance.com"),
        binance_ws_url=os.environ.get("BINANCE_WS_URL", "wss://stream.binance.com:9443/ws"),
        symbols=symbols,
        strategy=strategy,
        risk_level=risk_level,
        series_capacity=int(os.environ.get("SERIES_CAPACITY", "200")),
        seed_candles=int(os.environ.get("SEED_CANDLES", "100")),
        default_leverage=float(os.environ.get("DEFAULT_LEVERAGE", "10")),
        default_margin=float(os.environ.get("DEFAULT_MARGIN", "1000")),
        max_open_positions=int(os.environ.get("MAX_OPEN_POSITIONS", "5")),
        max_active_signals=int(os.environ.get("MAX_ACTIVE_SIGNALS", "10")),
        signal_ttl_seconds=int(os.environ.get("SIGNAL_TTL_SECONDS", "300")),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
    )

    for name, value in (
        ("SERIES_CAPACITY", config.series_capacity),
        ("SEED_CANDLES", config.seed_candles),
        ("MAX_OPEN_POSITIONS", config.max_open_positions),
        ("MAX_ACTIVE_SIGNALS", config.max_active_signals),
        ("SIGNAL_TTL_SECONDS", config.signal_ttl_seconds),
    ):
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value}")

    return config
