"""Exceptions raised by market data providers."""

from __future__ import annotations


class DataProviderError(Exception):
    """Base exception for market data provider errors."""


class HistoryFileError(DataProviderError):
    """A history file could not be read or parsed."""
