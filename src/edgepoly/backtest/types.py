"""Data types for the backtesting framework."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from edgepoly.core.types import Signal, SignalType, UtcDatetime


class Ratio(BaseModel):
    """A ratio that may have no finite value.

    Used instead of ``float("inf")`` for CAGR, Calmar, Sortino, profit factor
    and payoff ratio so that consumers must handle the unbounded case explicitly.
    """

    model_config = ConfigDict(frozen=True)

    value: float = 0.0
    unbounded: bool = False

    @classmethod
    def of(cls, value: float) -> Ratio:
        return cls(value=value)

    def __float__(self) -> float:
        return float("inf") if self.unbounded else self.value

    def __str__(self) -> str:
        return "unbounded" if self.unbounded else f"{self.value:.4f}"

    def __format__(self, format_spec: str) -> str:
        if self.unbounded or not format_spec:
            return str(self)
        return format(self.value, format_spec)


UNBOUNDED = Ratio(unbounded=True)


class ExitReason(StrEnum):
    """Why a position was closed."""

    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    EXPIRED = "EXPIRED"
    RESOLVED = "RESOLVED"
    END_OF_RUN = "END_OF_RUN"


class BacktestConfig(BaseModel):
    """Configuration for a single backtest run.

    Engine options left as ``None`` fall back to ``Settings.backtest``.
    """

    strategy_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    start_date: UtcDatetime
    end_date: UtcDatetime
    initial_capital: Decimal = Decimal("10000")
    markets: list[str] = Field(default_factory=list)
    max_concurrent_positions: int | None = Field(default=None, ge=0)
    slippage: Decimal | None = Field(default=None, ge=0, lt=1)
    fees: Decimal | None = Field(default=None, ge=0)
    min_position_size: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_dates(self) -> BacktestConfig:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


@dataclass
class Position:
    """An open position, owned by the position book for the whole run."""

    market_id: str
    outcome_id: str
    side: SignalType
    entry_price: Decimal
    entry_time: datetime
    size: Decimal
    signal: Signal

    @property
    def is_long(self) -> bool:
        return self.side == SignalType.BUY


@dataclass(frozen=True)
class Trade:
    """Immutable record of a closed position."""

    id: str
    market_id: str
    outcome_id: str
    side: SignalType
    entry_time: datetime
    exit_time: datetime
    entry_price: Decimal
    exit_price: Decimal
    size: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    fees: Decimal
    slippage: Decimal
    exit_reason: ExitReason
    signal: Signal

    @property
    def holding_hours(self) -> float:
        return (self.exit_time - self.entry_time).total_seconds() / 3600


@dataclass(frozen=True)
class EquityPoint:
    """A single point on the equity curve."""

    timestamp: datetime
    equity: Decimal
    peak: Decimal
    drawdown: Decimal
    drawdown_percent: float


@dataclass
class DrawdownPeriod:
    """A contiguous stretch of the equity curve below its running peak."""

    start_date: datetime
    end_date: datetime
    max_drawdown: Decimal
    max_drawdown_percent: float
    duration: float  # days
    recovered: bool = False
    recovery_date: datetime | None = None


@dataclass(frozen=True)
class MonthlyReturn:
    """Equity return within one calendar month."""

    year: int
    month: int
    return_pct: float
    trades: int = 0


@dataclass(frozen=True)
class BacktestSummary:
    """Trade-level aggregates for a finished run."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    breakeven_trades: int = 0
    win_rate: float = 0.0
    total_pnl: Decimal = Decimal(0)
    total_return: float = 0.0
    final_equity: Decimal = Decimal(0)
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: Ratio = Ratio()
    profit_factor: Ratio = Ratio()
    average_win: Decimal = Decimal(0)
    average_loss: Decimal = Decimal(0)
    largest_win: Decimal = Decimal(0)
    largest_loss: Decimal = Decimal(0)
    average_holding_period: float = 0.0  # hours
    exposure: float = 0.0


@dataclass(frozen=True)
class PerformanceMetrics:
    """Risk-adjusted statistics over the equity curve and trade list."""

    cagr: Ratio = Ratio()
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: Ratio = Ratio()
    calmar_ratio: Ratio = Ratio()
    max_drawdown: float = 0.0
    max_drawdown_duration: float = 0.0  # days
    win_rate: float = 0.0
    profit_factor: Ratio = Ratio()
    expectancy: float = 0.0
    payoff_ratio: Ratio = Ratio()
    ulcer_index: float = 0.0


@dataclass
class BacktestResult:
    """Everything produced by a backtest run."""

    config: BacktestConfig
    summary: BacktestSummary
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    drawdowns: list[DrawdownPeriod] = field(default_factory=list)
    monthly_returns: list[MonthlyReturn] = field(default_factory=list)
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form; pydantic members are dumped, dataclasses expanded."""

        def _convert(value: Any) -> Any:
            if isinstance(value, BaseModel):
                return value.model_dump(mode="json")
            if isinstance(value, dict):
                return {k: _convert(v) for k, v in value.items()}
            if isinstance(value, list):
                return [_convert(v) for v in value]
            if isinstance(value, Decimal):
                return str(value)
            if isinstance(value, datetime):
                return value.isoformat()
            return value

        return {
            "config": self.config.model_dump(mode="json"),
            "summary": _convert(asdict(self.summary)),
            "trades": [_convert(asdict(t)) for t in self.trades],
            "equity_curve": [_convert(asdict(p)) for p in self.equity_curve],
            "drawdowns": [_convert(asdict(d)) for d in self.drawdowns],
            "monthly_returns": [_convert(asdict(m)) for m in self.monthly_returns],
            "metrics": _convert(asdict(self.metrics)),
        }
