"""Strategy module — capability interface, base class, registry."""

from edgepoly.strategy.base import (
    BaseStrategy,
    ParameterDefinition,
    Strategy,
    StrategyStatus,
)
from edgepoly.strategy.exceptions import ParameterError, StrategyError, UnknownStrategyError
from edgepoly.strategy.mean_reversion import MeanReversionStrategy
from edgepoly.strategy.registry import available_strategies, create_strategy, register_strategy

__all__ = [
    "BaseStrategy",
    "MeanReversionStrategy",
    "ParameterDefinition",
    "ParameterError",
    "Strategy",
    "StrategyError",
    "StrategyStatus",
    "UnknownStrategyError",
    "available_strategies",
    "create_strategy",
    "register_strategy",
]
