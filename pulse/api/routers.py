"""Internal API routers — /status, /signals, /positions, /risk-levels endpoints.

No business logic. Delegates to the engine manager, signal board and
position book injected at startup.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from pulse.events import PositionCloseEvent, SignalEmitted
from pulse.monitor.book import PositionLimitReached
from pulse.risk.tiers import RISK_LEVELS
from pulse.risk.trade_calculator import InvalidTradeParameters, compute_trade

logger = logging.getLogger("pulse.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_engine_manager = None  # Set via configure_routers()
_book = None            # Set via configure_routers()
_signal_board = None    # Set via configure_routers()
_client = None          # Set via configure_routers()
_closed_positions: list = []  # Ring buffer of close events (max 50)
_signal_history: list = []    # Ring buffer of emitted signals (max 50)

_HISTORY_LIMIT = 50


def configure_routers(
    engine_manager=None,
    book=None,
    signal_board=None,
    client=None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        engine_manager: An ``EngineManager`` for status and control.
        book: The ``PositionBook`` that owns open positions.
        signal_board: The ``SignalBoard`` of actionable signals.
        client: A ``BinanceClient`` used to price manual orders that
            omit ``entry_price``.
    """
    global _engine_manager, _book, _signal_board, _client  # noqa: PLW0603
    _engine_manager = engine_manager
    _book = book
    _signal_board = signal_board
    _client = client


def record_event(event: object) -> None:
    """Event-bus listener feeding the closed-position and signal logs."""
    if isinstance(event, PositionCloseEvent):
        _closed_positions.append(event.to_dict())
        if len(_closed_positions) > _HISTORY_LIMIT:
            del _closed_positions[0]
    elif isinstance(event, SignalEmitted):
        _signal_history.append(event.signal.to_dict())
        if len(_signal_history) > _HISTORY_LIMIT:
            del _signal_history[0]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _balance_error(body: dict, margin: float) -> Optional[JSONResponse]:
    """Reject when the caller's ``available_balance`` cannot cover *margin*."""
    if "available_balance" not in body:
        return None
    try:
        balance = float(body["available_balance"])
    except (TypeError, ValueError):
        return _error(400, "available_balance must be a number")
    if balance < margin:
        return _error(400, "Insufficient balance")
    return None


# ── Status ───────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return scanner status for every symbol."""
    if _engine_manager is None:
        return {"scanners": {}}
    status = _engine_manager.get_status()
    status["open_positions"] = len(_book) if _book is not None else 0
    status["active_signals"] = len(_signal_board) if _signal_board is not None else 0
    return status


@router.get("/status/{symbol}")
async def get_symbol_status(symbol: str):
    """Return scanner status for one symbol."""
    if _engine_manager is None:
        return {"error": "No engine manager"}
    return _engine_manager.get_status(symbol)


@router.get("/risk-levels")
async def get_risk_levels():
    """Return the static risk-tier table."""
    return {"risk_levels": [level.to_dict() for level in RISK_LEVELS.values()]}


# ── Signals ──────────────────────────────────────────────────────────────


@router.get("/signals")
async def get_signals():
    """Return actionable signals, newest first."""
    if _signal_board is None:
        return {"signals": []}
    return {"signals": [s.to_dict() for s in _signal_board.active()]}


@router.get("/signals/history")
async def get_signal_history(
    limit: int = Query(default=20, ge=1, le=50),
):
    """Return recently emitted signals, newest first."""
    recent = _signal_history[-limit:]
    recent.reverse()
    return {"signals": recent}


@router.post("/signals/{signal_id}/execute")
async def execute_signal(signal_id: str, body: Optional[dict] = None):
    """Open a position from an active signal.

    Optional body fields: ``leverage``, ``margin``, ``available_balance``.
    """
    body = body or {}
    if _book is None or _signal_board is None:
        return {"error": "Trading not configured"}

    signal = _signal_board.get(signal_id)
    if signal is None:
        return _error(404, f"Signal {signal_id} is expired or unknown")

    try:
        leverage = float(body["leverage"]) if body.get("leverage") is not None else None
        margin = (
            float(body["margin"]) if body.get("margin") is not None else _book.default_margin
        )
    except (TypeError, ValueError):
        return _error(422, "leverage and margin must be numbers")

    rejected = _balance_error(body, margin)
    if rejected is not None:
        return rejected

    try:
        position = await _book.open_from_signal(signal, leverage=leverage, margin=margin)
    except InvalidTradeParameters as exc:
        return _error(422, str(exc))
    except PositionLimitReached as exc:
        return _error(409, str(exc))

    _signal_board.remove(signal_id)
    logger.info("Signal %s executed as position %s", signal_id, position.id)
    return {"status": "opened", "position": position.to_dict()}


# ── Positions ────────────────────────────────────────────────────────────


@router.get("/positions")
async def get_positions():
    """Return open positions with live PnL."""
    if _book is None:
        return {"positions": []}
    return {"positions": [p.to_dict() for p in _book.open_positions]}


@router.get("/positions/closed")
async def get_closed_positions(
    limit: int = Query(default=50, ge=1, le=50),
):
    """Return recent close events, newest first."""
    recent = _closed_positions[-limit:]
    recent.reverse()
    realized = sum(e["realized_pnl"] for e in recent)
    return {"positions": recent, "realized_pnl": round(realized, 2)}


@router.post("/positions")
async def open_position(body: dict):
    """Open a manual position.

    Required: ``symbol``, ``side``, ``leverage``, ``margin``.  Optional:
    ``entry_price`` (defaults to the latest traded price),
    ``stop_loss_pct``, ``take_profit_pct``, ``available_balance``.
    """
    if _book is None:
        return {"error": "Trading not configured"}

    missing = [k for k in ("symbol", "side", "leverage", "margin") if k not in body]
    if missing:
        return _error(422, f"Missing fields: {', '.join(missing)}")

    symbol = str(body["symbol"]).upper()
    side = str(body["side"]).lower()
    try:
        leverage = float(body["leverage"])
        margin = float(body["margin"])
    except (TypeError, ValueError):
        return _error(422, "leverage and margin must be numbers")

    entry_price = body.get("entry_price")
    if entry_price is None:
        if _client is None:
            return _error(503, f"No price available for {symbol}")
        try:
            entry_price = await _client.fetch_price(symbol)
        except Exception as exc:
            logger.warning("Price lookup for %s failed: %s", symbol, exc)
            return _error(503, f"No price available for {symbol}")

    try:
        # Validate before the balance check so bad input reports as 422.
        compute_trade(float(entry_price), leverage, margin, side)
    except (InvalidTradeParameters, TypeError, ValueError) as exc:
        return _error(422, str(exc))

    rejected = _balance_error(body, margin)
    if rejected is not None:
        return rejected

    kwargs = {}
    try:
        if "stop_loss_pct" in body:
            kwargs["stop_loss_pct"] = -abs(float(body["stop_loss_pct"]))
        if "take_profit_pct" in body:
            kwargs["take_profit_pct"] = abs(float(body["take_profit_pct"]))
    except (TypeError, ValueError):
        return _error(422, "stop_loss_pct and take_profit_pct must be numbers")

    try:
        position = await _book.open_manual(
            symbol, side, float(entry_price), leverage, margin, **kwargs,
        )
    except InvalidTradeParameters as exc:
        return _error(422, str(exc))
    except PositionLimitReached as exc:
        return _error(409, str(exc))

    return {"status": "opened", "position": position.to_dict()}


@router.post("/positions/{position_id}/close")
async def close_position(position_id: str):
    """Manually close an open position at its last computed PnL."""
    if _book is None:
        return {"error": "Trading not configured"}
    try:
        event = await _book.close(position_id)
    except KeyError:
        return _error(404, f"Unknown position: {position_id}")
    logger.info("Position %s closed via API.", position_id)
    return {"status": "closed", "close": event.to_dict() if event else None}


# ── Control actions ──────────────────────────────────────────────────────


@router.post("/control/symbol/{symbol}/stop")
async def stop_symbol(symbol: str):
    """Stop scanning one symbol and drop its series."""
    if _engine_manager is None:
        return {"error": "No engine manager"}
    if not await _engine_manager.stop_symbol(symbol):
        return {"error": f"Unknown symbol: {symbol}"}
    logger.info("Scanner %s stopped via API.", symbol.upper())
    return {"status": "stopped", "symbol": symbol.upper()}
