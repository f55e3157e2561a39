"""Historical market data providers."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field, ValidationError

from edgepoly.core.types import MarketSnapshot
from edgepoly.data.exceptions import HistoryFileError

logger = structlog.stdlib.get_logger()


@runtime_checkable
class MarketDataProvider(Protocol):
    """Source of ordered historical snapshots for one market."""

    async def get_historical_data(
        self,
        market_id: str,
        start: datetime,
        end: datetime,
    ) -> list[MarketSnapshot]: ...


class MarketHistory(BaseModel):
    """On-disk history format: snapshots grouped by market id.

    Example::

        {
            "name": "Election week",
            "markets": {
                "mkt_1": [
                    {
                        "id": "mkt_1",
                        "question": "Will X happen?",
                        "outcomes": [{"id": "yes", "name": "Yes", "price": "0.42"}],
                        "timestamp": "2024-01-01T00:00:00Z"
                    }
                ]
            }
        }
    """

    name: str = "unnamed"
    description: str = ""
    markets: dict[str, list[MarketSnapshot]] = Field(default_factory=dict)

    def date_range(self) -> tuple[datetime, datetime] | None:
        stamps = [s.timestamp for series in self.markets.values() for s in series]
        if not stamps:
            return None
        return min(stamps), max(stamps)


class InMemoryDataProvider:
    """Serves snapshots from a dict, filtered to the requested range and sorted."""

    def __init__(self, data: Mapping[str, Sequence[MarketSnapshot]]) -> None:
        self._data = {market_id: list(series) for market_id, series in data.items()}

    @property
    def market_ids(self) -> list[str]:
        return list(self._data)

    async def get_historical_data(
        self,
        market_id: str,
        start: datetime,
        end: datetime,
    ) -> list[MarketSnapshot]:
        series = self._data.get(market_id, [])
        in_range = [s for s in series if start <= s.timestamp <= end]
        return sorted(in_range, key=lambda s: s.timestamp)


class JsonFileDataProvider(InMemoryDataProvider):
    """Loads a :class:`MarketHistory` JSON file once and serves it from memory."""

    def __init__(self, history: MarketHistory) -> None:
        super().__init__(history.markets)
        self.history = history

    @classmethod
    def from_path(cls, path: str | Path) -> JsonFileDataProvider:
        """Read and validate a history file.

        Raises:
            HistoryFileError: The file is missing, not JSON, or fails validation.
        """
        path = Path(path)
        try:
            with open(path) as f:
                raw = json.load(f)
            history = MarketHistory.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise HistoryFileError(f"Cannot load market history from {path}: {exc}") from exc

        logger.info(
            "market_history_loaded",
            path=str(path),
            name=history.name,
            markets=len(history.markets),
        )
        return cls(history)
