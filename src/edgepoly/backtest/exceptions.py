"""Backtest exceptions."""

from __future__ import annotations


class BacktestError(Exception):
    """Base exception for backtest errors."""


class StrategyInitializationError(BacktestError):
    """The strategy failed to initialize; the run was aborted before any frame."""
