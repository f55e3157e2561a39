"""EquityTracker — running equity, peak and per-frame drawdown."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from edgepoly.backtest.types import EquityPoint


class EquityTracker:
    """Tracks realized equity and records one curve point per frame.

    The peak starts at the initial capital and never decreases.
    """

    def __init__(self, initial_capital: Decimal) -> None:
        self._initial = initial_capital
        self._equity = initial_capital
        self._peak = initial_capital
        self._curve: list[EquityPoint] = []

    @property
    def initial_capital(self) -> Decimal:
        return self._initial

    @property
    def equity(self) -> Decimal:
        return self._equity

    @property
    def peak(self) -> Decimal:
        return self._peak

    @property
    def curve(self) -> list[EquityPoint]:
        return list(self._curve)

    def realize(self, pnl: Decimal) -> Decimal:
        """Apply a realized trade P&L and return the new equity."""
        self._equity += pnl
        return self._equity

    def mark(self, timestamp: datetime) -> EquityPoint:
        """Append the equity point for a finished frame."""
        if self._curve and timestamp <= self._curve[-1].timestamp:
            raise ValueError(
                f"equity points must be strictly increasing in time: "
                f"{timestamp.isoformat()} <= {self._curve[-1].timestamp.isoformat()}"
            )

        self._peak = max(self._peak, self._equity)
        drawdown = self._peak - self._equity
        drawdown_pct = float(drawdown / self._peak) if self._peak > 0 else 0.0

        point = EquityPoint(
            timestamp=timestamp,
            equity=self._equity,
            peak=self._peak,
            drawdown=drawdown,
            drawdown_percent=drawdown_pct,
        )
        self._curve.append(point)
        return point
