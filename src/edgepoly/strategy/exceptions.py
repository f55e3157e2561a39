"""Strategy-layer exceptions."""

from __future__ import annotations


class StrategyError(Exception):
    """Base exception for strategy errors."""


class ParameterError(StrategyError):
    """Raised when strategy parameters fail validation."""


class UnknownStrategyError(StrategyError):
    """Raised when a strategy identifier is not registered."""
