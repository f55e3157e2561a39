"""Market data providers for backtests."""

from edgepoly.data.exceptions import DataProviderError, HistoryFileError
from edgepoly.data.provider import (
    InMemoryDataProvider,
    JsonFileDataProvider,
    MarketDataProvider,
    MarketHistory,
)

__all__ = [
    "DataProviderError",
    "HistoryFileError",
    "InMemoryDataProvider",
    "JsonFileDataProvider",
    "MarketDataProvider",
    "MarketHistory",
]
