"""Timeline driver — merges per-market histories into synchronous frames."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from edgepoly.core.types import MarketSnapshot

logger = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class Frame:
    """One simulation tick: the markets that have a snapshot at ``timestamp``."""

    timestamp: datetime
    snapshots: dict[str, MarketSnapshot]

    def get(self, market_id: str) -> MarketSnapshot | None:
        return self.snapshots.get(market_id)

    def tradable(self) -> list[MarketSnapshot]:
        """Snapshots of unresolved markets, in configured market order."""
        return [s for s in self.snapshots.values() if not s.resolved]


@dataclass
class MarketState:
    """Per-run state keyed by market id.

    Created fresh for every run and discarded with it, so concurrent runs
    never share market history.
    """

    last_seen: dict[str, MarketSnapshot] = field(default_factory=dict)

    def observe(self, frame: Frame) -> None:
        self.last_seen.update(frame.snapshots)

    def last_snapshot(self, market_id: str) -> MarketSnapshot | None:
        return self.last_seen.get(market_id)


class Timeline:
    """Ordered sequence of frames built from every market's history.

    Usage::

        timeline = Timeline(market_data)
        for frame in timeline:
            ...
    """

    def __init__(self, market_data: Mapping[str, Sequence[MarketSnapshot]]) -> None:
        self._by_market: dict[str, dict[datetime, MarketSnapshot]] = {}
        for market_id, history in market_data.items():
            if not history:
                logger.debug("market_without_data_skipped", market_id=market_id)
                continue
            # Later snapshots win on duplicate timestamps.
            self._by_market[market_id] = {s.timestamp: s for s in history}

        stamps: set[datetime] = set()
        for series in self._by_market.values():
            stamps.update(series)
        self._timestamps = sorted(stamps)

    @property
    def timestamps(self) -> list[datetime]:
        return list(self._timestamps)

    @property
    def market_ids(self) -> list[str]:
        """Markets that contributed at least one snapshot."""
        return list(self._by_market)

    def __len__(self) -> int:
        return len(self._timestamps)

    def __iter__(self) -> Iterator[Frame]:
        for ts in self._timestamps:
            snapshots = {
                market_id: series[ts]
                for market_id, series in self._by_market.items()
                if ts in series
            }
            if not snapshots:
                continue
            yield Frame(timestamp=ts, snapshots=snapshots)
