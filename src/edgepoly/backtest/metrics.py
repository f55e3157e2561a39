"""Performance statistics over a finished equity curve and trade list.

Every function degrades to 0 (or :data:`UNBOUNDED`) on empty histories,
zero variance and zero drawdown instead of raising.
"""

from __future__ import annotations

import math
import statistics
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from edgepoly.backtest.periods import max_drawdown_duration
from edgepoly.backtest.types import (
    UNBOUNDED,
    BacktestSummary,
    EquityPoint,
    PerformanceMetrics,
    Ratio,
    Trade,
)

_DAYS_PER_YEAR = 365
_MAX_LOG_GROWTH = math.log(sys.float_info.max)


# ── Ratio helpers ──────────────────────────────────────────────


def simple_returns(curve: Sequence[EquityPoint]) -> list[float]:
    """Fractional change between consecutive equity points."""
    returns: list[float] = []
    for prev, cur in zip(curve, curve[1:]):
        if prev.equity <= 0:
            returns.append(0.0)
        else:
            returns.append(float((cur.equity - prev.equity) / prev.equity))
    return returns


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0) -> float:
    if not returns:
        return 0.0
    std = statistics.pstdev(returns)
    if std == 0:
        return 0.0
    return (statistics.fmean(returns) - risk_free_rate) / std


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0) -> Ratio:
    """Excess mean return over downside deviation.

    With no returns below ``risk_free_rate`` the ratio is unbounded when the
    excess return is positive and 0 otherwise.
    """
    if not returns:
        return Ratio()
    excess = statistics.fmean(returns) - risk_free_rate

    downside = [r - risk_free_rate for r in returns if r < risk_free_rate]
    if not downside:
        return UNBOUNDED if excess > 0 else Ratio()

    down_dev = math.sqrt(sum(d * d for d in downside) / len(downside))
    if down_dev == 0:
        return Ratio()
    return Ratio.of(excess / down_dev)


def volatility(returns: Sequence[float], periods_per_year: int = 252) -> float:
    """Annualized population standard deviation of returns."""
    if not returns:
        return 0.0
    return statistics.pstdev(returns) * math.sqrt(periods_per_year)


def cagr(start_value: Decimal, end_value: Decimal, years: float) -> Ratio:
    """Compound annual growth rate, computed in log space.

    Spans short enough to push the annualized growth past the float range
    (a profitable run of a few hours) yield :data:`UNBOUNDED`.
    """
    if start_value <= 0 or years <= 0:
        return Ratio()
    if end_value <= 0:
        return Ratio.of(-1.0)
    growth = float((end_value / start_value).ln()) / years
    if growth >= _MAX_LOG_GROWTH:
        return UNBOUNDED
    return Ratio.of(math.expm1(growth))


def calmar_ratio(growth: Ratio, max_drawdown_pct: float) -> Ratio:
    if max_drawdown_pct <= 0:
        return Ratio()
    ratio = float(growth) / max_drawdown_pct
    return Ratio.of(ratio) if math.isfinite(ratio) else UNBOUNDED


def years_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 86400 / _DAYS_PER_YEAR


def max_drawdown(curve: Sequence[EquityPoint]) -> tuple[Decimal, float]:
    """Largest absolute drawdown and its percent at that same point."""
    worst: EquityPoint | None = None
    for point in curve:
        if worst is None or point.drawdown > worst.drawdown:
            worst = point
    if worst is None:
        return Decimal(0), 0.0
    return worst.drawdown, worst.drawdown_percent


def ulcer_index(curve: Sequence[EquityPoint]) -> float:
    """Root-mean-square of percent drawdowns, in percentage points."""
    if not curve:
        return 0.0
    squares = [(p.drawdown_percent * 100) ** 2 for p in curve]
    return math.sqrt(sum(squares) / len(squares))


def exposure(trades: Sequence[Trade], curve: Sequence[EquityPoint]) -> float:
    """Fraction of the curve's time span spent holding positions."""
    if not curve:
        return 0.0
    total = (curve[-1].timestamp - curve[0].timestamp).total_seconds()
    if total <= 0:
        return 0.0
    held = sum((t.exit_time - t.entry_time).total_seconds() for t in trades)
    return held / total


# ── Trade statistics ───────────────────────────────────────────


@dataclass(frozen=True)
class TradeStats:
    """Win/loss breakdown shared by the summary and the metrics."""

    total: int
    wins: int
    losses: int
    breakeven: int
    gross_profit: Decimal
    gross_loss: Decimal
    largest_win: Decimal
    largest_loss: Decimal

    @classmethod
    def from_trades(cls, trades: Sequence[Trade]) -> TradeStats:
        wins = [t.pnl for t in trades if t.pnl > 0]
        losses = [-t.pnl for t in trades if t.pnl < 0]
        return cls(
            total=len(trades),
            wins=len(wins),
            losses=len(losses),
            breakeven=len(trades) - len(wins) - len(losses),
            gross_profit=sum(wins, Decimal(0)),
            gross_loss=sum(losses, Decimal(0)),
            largest_win=max(wins, default=Decimal(0)),
            largest_loss=max(losses, default=Decimal(0)),
        )

    @property
    def win_rate(self) -> float:
        return self.wins / self.total if self.total else 0.0

    @property
    def loss_rate(self) -> float:
        return self.losses / self.total if self.total else 0.0

    @property
    def average_win(self) -> Decimal:
        return self.gross_profit / self.wins if self.wins else Decimal(0)

    @property
    def average_loss(self) -> Decimal:
        return self.gross_loss / self.losses if self.losses else Decimal(0)

    @property
    def profit_factor(self) -> Ratio:
        if self.gross_loss > 0:
            return Ratio.of(float(self.gross_profit / self.gross_loss))
        return UNBOUNDED if self.gross_profit > 0 else Ratio()

    @property
    def payoff_ratio(self) -> Ratio:
        if self.average_loss > 0:
            return Ratio.of(float(self.average_win / self.average_loss))
        return UNBOUNDED if self.average_win > 0 else Ratio()

    @property
    def expectancy(self) -> float:
        return (
            self.win_rate * float(self.average_win)
            - self.loss_rate * float(self.average_loss)
        )


# ── Aggregates ─────────────────────────────────────────────────


def summarize(
    trades: Sequence[Trade],
    curve: Sequence[EquityPoint],
    initial_capital: Decimal,
    final_equity: Decimal,
    risk_free_rate: float = 0.0,
) -> BacktestSummary:
    """Trade-level summary of a finished run."""
    stats = TradeStats.from_trades(trades)
    returns = simple_returns(curve)
    total_pnl = sum((t.pnl for t in trades), Decimal(0))
    holding = [t.holding_hours for t in trades]

    return BacktestSummary(
        total_trades=stats.total,
        winning_trades=stats.wins,
        losing_trades=stats.losses,
        breakeven_trades=stats.breakeven,
        win_rate=stats.win_rate,
        total_pnl=total_pnl,
        total_return=float(total_pnl / initial_capital) if initial_capital > 0 else 0.0,
        final_equity=final_equity,
        max_drawdown=max_drawdown(curve)[1],
        sharpe_ratio=sharpe_ratio(returns, risk_free_rate),
        sortino_ratio=sortino_ratio(returns, risk_free_rate),
        profit_factor=stats.profit_factor,
        average_win=stats.average_win,
        average_loss=stats.average_loss,
        largest_win=stats.largest_win,
        largest_loss=stats.largest_loss,
        average_holding_period=statistics.fmean(holding) if holding else 0.0,
        exposure=exposure(trades, curve),
    )


def performance_metrics(
    trades: Sequence[Trade],
    curve: Sequence[EquityPoint],
    *,
    initial_capital: Decimal,
    final_equity: Decimal,
    start_date: datetime,
    end_date: datetime,
    risk_free_rate: float = 0.0,
    periods_per_year: int = 252,
) -> PerformanceMetrics:
    """Risk-adjusted metrics of a finished run."""
    stats = TradeStats.from_trades(trades)
    returns = simple_returns(curve)
    dd_pct = max_drawdown(curve)[1]
    growth = cagr(initial_capital, final_equity, years_between(start_date, end_date))

    return PerformanceMetrics(
        cagr=growth,
        volatility=volatility(returns, periods_per_year),
        sharpe_ratio=sharpe_ratio(returns, risk_free_rate),
        sortino_ratio=sortino_ratio(returns, risk_free_rate),
        calmar_ratio=calmar_ratio(growth, dd_pct),
        max_drawdown=dd_pct,
        max_drawdown_duration=max_drawdown_duration(curve),
        win_rate=stats.win_rate,
        profit_factor=stats.profit_factor,
        expectancy=stats.expectancy,
        payoff_ratio=stats.payoff_ratio,
        ulcer_index=ulcer_index(curve),
    )
