"""Backtesting framework — replay historical snapshots through a strategy."""

from edgepoly.backtest.engine import BacktestEngine
from edgepoly.backtest.exceptions import BacktestError, StrategyInitializationError
from edgepoly.backtest.types import (
    UNBOUNDED,
    BacktestConfig,
    BacktestResult,
    BacktestSummary,
    DrawdownPeriod,
    EquityPoint,
    ExitReason,
    MonthlyReturn,
    PerformanceMetrics,
    Position,
    Ratio,
    Trade,
)

__all__ = [
    "UNBOUNDED",
    "BacktestConfig",
    "BacktestEngine",
    "BacktestError",
    "BacktestResult",
    "BacktestSummary",
    "DrawdownPeriod",
    "EquityPoint",
    "ExitReason",
    "MonthlyReturn",
    "PerformanceMetrics",
    "Position",
    "Ratio",
    "StrategyInitializationError",
    "Trade",
]
