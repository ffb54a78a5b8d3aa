"""Signal board: the set of emitted signals that are still actionable.

A signal stays on the board until it is executed, its validity window
elapses, or price moves too far against it before anyone acts on it.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Optional

from pulse.strategy.models import BUY, Signal

logger = logging.getLogger("pulse.signals")

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_SIGNALS = 10
ADVERSE_MOVE_PCT = 2.0


class SignalBoard:
    """Newest-first, bounded collection of actionable signals.

    Args:
        ttl_seconds: Validity window measured from ``Signal.created_at``.
        max_signals: Oldest signals are dropped beyond this count.
        adverse_move_pct: A signal is invalidated once price has moved
            this many percent against its direction.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_signals: int = DEFAULT_MAX_SIGNALS,
        adverse_move_pct: float = ADVERSE_MOVE_PCT,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max = max_signals
        self._adverse_move_pct = adverse_move_pct
        self._signals: "OrderedDict[str, Signal]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._signals)

    def add(self, signal: Signal) -> None:
        self._signals[signal.id] = signal
        self._signals.move_to_end(signal.id, last=False)
        while len(self._signals) > self._max:
            dropped_id, _ = self._signals.popitem(last=True)
            logger.debug("Signal board full, dropped %s", dropped_id)

    def get(self, signal_id: str, now: Optional[datetime] = None) -> Optional[Signal]:
        """Return the signal if it is still valid, else ``None``."""
        self.prune(now)
        return self._signals.get(signal_id)

    def remove(self, signal_id: str) -> Optional[Signal]:
        return self._signals.pop(signal_id, None)

    def active(self, now: Optional[datetime] = None) -> list[Signal]:
        """Valid signals, newest first."""
        self.prune(now)
        return list(self._signals.values())

    def prune(self, now: Optional[datetime] = None) -> list[str]:
        """Drop expired signals.  Returns the removed ids."""
        if now is None:
            now = datetime.now(timezone.utc)
        expired = [
            sid for sid, s in self._signals.items()
            if now - s.created_at >= self._ttl
        ]
        for sid in expired:
            del self._signals[sid]
        if expired:
            logger.debug("Expired %d signal(s)", len(expired))
        return expired

    def invalidate_on_price(self, symbol: str, price: float) -> list[str]:
        """Drop *symbol* signals that price has moved against.

        Returns the removed ids.
        """
        removed: list[str] = []
        for sid, s in list(self._signals.items()):
            if s.symbol != symbol or s.entry_price <= 0:
                continue
            change_pct = (price - s.entry_price) / s.entry_price * 100
            if s.direction == BUY:
                adverse = change_pct < -self._adverse_move_pct
            else:
                adverse = change_pct > self._adverse_move_pct
            if adverse:
                del self._signals[sid]
                removed.append(sid)
                logger.info(
                    "Signal %s %s %s invalidated (price moved %.2f%%)",
                    sid, s.symbol, s.direction, change_pct,
                )
        return removed
