"""Strategy registry — look up strategy factories by identifier."""

from __future__ import annotations

from collections.abc import Callable

from edgepoly.strategy.base import Strategy
from edgepoly.strategy.exceptions import UnknownStrategyError
from edgepoly.strategy.mean_reversion import MeanReversionStrategy

StrategyFactory = Callable[[], Strategy]

_REGISTRY: dict[str, StrategyFactory] = {
    MeanReversionStrategy.strategy_id: MeanReversionStrategy,
}


def register_strategy(strategy_id: str, factory: StrategyFactory) -> None:
    """Register (or replace) the factory for ``strategy_id``."""
    _REGISTRY[strategy_id] = factory


def available_strategies() -> list[str]:
    return sorted(_REGISTRY)


def create_strategy(strategy_id: str) -> Strategy:
    """Build a fresh, uninitialized strategy instance.

    Raises:
        UnknownStrategyError: No factory is registered under ``strategy_id``.
    """
    factory = _REGISTRY.get(strategy_id)
    if factory is None:
        raise UnknownStrategyError(
            f"Unknown strategy {strategy_id!r}; available: {', '.join(available_strategies())}"
        )
    return factory()
