"""Scorer registry: maps strategy names to scorer classes.

Used by EngineManager to instantiate the single scorer applied to every
scanned symbol.
"""

from pulse.strategy.band_touch import BandTouchScorer
from pulse.strategy.base import ScorerProtocol
from pulse.strategy.confluence import ConfluenceScorer

DEFAULT_STRATEGY = "confluence"

STRATEGY_REGISTRY: dict[str, type] = {
    "confluence": ConfluenceScorer,
    "band_touch": BandTouchScorer,
}


def get_scorer(name: str) -> ScorerProtocol:
    """Look up and instantiate a scorer by registry key.

    Raises ``KeyError`` if the strategy name is not registered.
    """
    if name not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{name}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[name]()
