"""Post-run extraction of drawdown periods and monthly returns."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from edgepoly.backtest.types import DrawdownPeriod, EquityPoint, MonthlyReturn, Trade

_SECONDS_PER_DAY = 86400


def _days(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / _SECONDS_PER_DAY


def drawdown_periods(curve: Sequence[EquityPoint]) -> list[DrawdownPeriod]:
    """Split the equity curve into drawdown periods in a single pass.

    A period opens at the first point below the running peak, which starts
    at the tracker peak (initial capital included), and closes, recovered,
    at the first point whose equity exceeds that peak. A period
    still open at the end of the curve is returned unrecovered.
    """
    if not curve:
        return []

    periods: list[DrawdownPeriod] = []
    peak = curve[0].peak
    current: DrawdownPeriod | None = None

    for point in curve:
        if point.equity > peak:
            if current is not None:
                current.recovered = True
                current.recovery_date = point.timestamp
                periods.append(current)
                current = None
            peak = point.equity
        elif point.drawdown > 0:
            if current is None:
                current = DrawdownPeriod(
                    start_date=point.timestamp,
                    end_date=point.timestamp,
                    max_drawdown=point.drawdown,
                    max_drawdown_percent=point.drawdown_percent,
                    duration=0.0,
                )
                continue
            current.end_date = point.timestamp
            current.duration = _days(current.start_date, current.end_date)
            if point.drawdown > current.max_drawdown:
                current.max_drawdown = point.drawdown
                current.max_drawdown_percent = point.drawdown_percent

    if current is not None:
        periods.append(current)
    return periods


def max_drawdown_duration(curve: Sequence[EquityPoint]) -> float:
    """Longest time in days from a peak until equity exceeds it.

    The tracker peak at the first point counts, so a curve that opens below
    its initial capital starts underwater. An unrecovered drawdown is
    measured up to the last point.
    """
    if not curve:
        return 0.0

    longest = 0.0
    peak = curve[0].peak
    peak_date = curve[0].timestamp
    underwater = False
    for point in curve:
        if point.equity > peak:
            if underwater:
                longest = max(longest, _days(peak_date, point.timestamp))
            peak = point.equity
            peak_date = point.timestamp
            underwater = False
        elif point.equity < peak:
            underwater = True

    if underwater:
        longest = max(longest, _days(peak_date, curve[-1].timestamp))
    return longest


def monthly_returns(
    curve: Sequence[EquityPoint],
    trades: Sequence[Trade] = (),
) -> list[MonthlyReturn]:
    """Per-calendar-month equity returns with the number of trades closed."""
    by_month: dict[tuple[int, int], list[EquityPoint]] = {}
    for point in curve:
        key = (point.timestamp.year, point.timestamp.month)
        by_month.setdefault(key, []).append(point)

    trade_counts = Counter((t.exit_time.year, t.exit_time.month) for t in trades)

    result: list[MonthlyReturn] = []
    for (year, month), points in sorted(by_month.items()):
        start = points[0].equity
        end = points[-1].equity
        ret = float((end - start) / start) if start > 0 else 0.0
        result.append(MonthlyReturn(
            year=year,
            month=month,
            return_pct=ret,
            trades=trade_counts.get((year, month), 0),
        ))
    return result
