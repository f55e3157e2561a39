"""Tests for BacktestEngine — full simulation pipeline."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest

from edgepoly.backtest.engine import BacktestEngine
from edgepoly.backtest.exceptions import StrategyInitializationError
from edgepoly.backtest.types import UNBOUNDED, BacktestConfig, ExitReason, Ratio
from edgepoly.core.config import BacktestDefaults
from edgepoly.core.types import (
    MarketSnapshot,
    OutcomeSnapshot,
    Signal,
    SignalOutcome,
    SignalResult,
    SignalType,
)
from edgepoly.data.provider import InMemoryDataProvider
from edgepoly.strategy.exceptions import ParameterError
from edgepoly.strategy.mean_reversion import MeanReversionStrategy

T0 = datetime(2024, 1, 1, tzinfo=UTC)


# ── Helpers ─────────────────────────────────────────────────────


def _t(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def _snap(
    market_id: str,
    hours: float,
    price: str,
    resolved: bool = False,
) -> MarketSnapshot:
    return MarketSnapshot(
        id=market_id,
        question=f"Will {market_id} happen?",
        outcomes=[OutcomeSnapshot(id=f"{market_id}_yes", name="Yes", price=Decimal(price))],
        resolved=resolved,
        timestamp=_t(hours),
    )


def _series(market_id: str, prices: list[str]) -> list[MarketSnapshot]:
    return [_snap(market_id, i, p) for i, p in enumerate(prices)]


def _signal(
    market_id: str,
    hours: float,
    signal_type: SignalType = SignalType.BUY,
    confidence: float = 0.8,
    **kw: Any,
) -> Signal:
    return Signal(
        strategy_id="scripted",
        market_id=market_id,
        outcome_id=f"{market_id}_yes",
        type=signal_type,
        strength=3,
        confidence=confidence,
        timestamp=_t(hours),
        **kw,
    )


class ScriptedStrategy:
    """Emits pre-scripted signals keyed by frame timestamp."""

    strategy_id = "scripted"

    def __init__(
        self,
        script: dict[datetime, list[Signal]] | None = None,
        size: Decimal = Decimal("100"),
    ) -> None:
        self.script = script or {}
        self.size = size
        self.parameters: dict[str, Any] | None = None
        self.frames: list[list[str]] = []
        self.results: list[SignalResult] = []

    async def initialize(self, parameters: dict[str, Any]) -> None:
        self.parameters = parameters

    async def generate_signals(self, snapshots: list[MarketSnapshot]) -> list[Signal]:
        self.frames.append([s.id for s in snapshots])
        return list(self.script.get(snapshots[0].timestamp, []))

    async def validate_signal(self, signal: Signal) -> bool:
        return True

    def get_position_size(self, signal: Signal, equity: Decimal) -> Decimal:
        return self.size

    def on_signal_executed(self, signal: Signal, result: SignalResult) -> None:
        self.results.append(result)


class RecordingProvider(InMemoryDataProvider):
    def __init__(self, data: dict[str, list[MarketSnapshot]]) -> None:
        super().__init__(data)
        self.requested: list[str] = []

    async def get_historical_data(
        self, market_id: str, start: datetime, end: datetime,
    ) -> list[MarketSnapshot]:
        self.requested.append(market_id)
        return await super().get_historical_data(market_id, start, end)


def _config(markets: list[str], end_hours: float = 10, **kw: Any) -> BacktestConfig:
    defaults: dict[str, Any] = {
        "strategy_id": "scripted",
        "start_date": T0,
        "end_date": _t(end_hours),
        "initial_capital": Decimal("10000"),
        "markets": markets,
        "slippage": Decimal("0"),
        "fees": Decimal("0"),
    }
    defaults.update(kw)
    return BacktestConfig(**defaults)


def _engine(data: dict[str, list[MarketSnapshot]]) -> BacktestEngine:
    return BacktestEngine(InMemoryDataProvider(data), BacktestDefaults())


# ── Scenarios ───────────────────────────────────────────────────


class TestSingleTradeScenario:
    async def test_buy_040_sell_060(self) -> None:
        data = {"m1": _series("m1", ["0.40", "0.50", "0.60"])}
        strategy = ScriptedStrategy({
            _t(0): [_signal("m1", 0, take_profit=Decimal("0.60"))],
        })
        result = await _engine(data).run(strategy, _config(["m1"], end_hours=2))

        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.entry_price == Decimal("0.40")
        assert trade.exit_price == Decimal("0.60")
        assert trade.pnl == Decimal("20")
        assert trade.exit_reason == ExitReason.TAKE_PROFIT
        assert result.summary.total_pnl == Decimal("20")
        assert result.summary.total_return == pytest.approx(0.002)
        assert result.summary.win_rate == 1.0
        assert result.summary.final_equity == Decimal("10020")
        assert result.equity_curve[-1].equity == Decimal("10020")

    async def test_strategy_notified_with_win(self) -> None:
        data = {"m1": _series("m1", ["0.40", "0.60"])}
        strategy = ScriptedStrategy({
            _t(0): [_signal("m1", 0, take_profit=Decimal("0.60"))],
        })
        await _engine(data).run(strategy, _config(["m1"], end_hours=1))

        assert len(strategy.results) == 1
        assert strategy.results[0].outcome == SignalOutcome.WIN
        assert strategy.results[0].pnl == Decimal("20")
        assert strategy.results[0].holding_period == pytest.approx(1.0)


class TestDuplicateSignalsScenario:
    async def test_two_signals_same_market_one_slot(self) -> None:
        data = {
            "a": _series("a", ["0.50", "0.50", "0.50"]),
            "b": _series("b", ["0.30", "0.30", "0.30"]),
        }
        strategy = ScriptedStrategy({
            _t(0): [_signal("a", 0)],
            _t(1): [_signal("b", 1), _signal("b", 1, confidence=0.9)],
        })
        result = await _engine(data).run(
            strategy, _config(["a", "b"], end_hours=2, max_concurrent_positions=2),
        )

        b_trades = [t for t in result.trades if t.market_id == "b"]
        assert len(b_trades) == 1
        assert len(result.trades) == 2
        assert b_trades[0].signal.confidence == 0.8
        # Both slots stay filled until the run closes them
        assert [t.exit_reason for t in result.trades] == [ExitReason.END_OF_RUN] * 2


# ── Lifecycle ───────────────────────────────────────────────────


class TestExits:
    async def test_stop_loss_wins_over_resolution(self) -> None:
        data = {"m1": [_snap("m1", 0, "0.50"), _snap("m1", 1, "0.00", resolved=True)]}
        strategy = ScriptedStrategy({
            _t(0): [_signal("m1", 0, stop_loss=Decimal("0.40"))],
        })
        result = await _engine(data).run(strategy, _config(["m1"], end_hours=1))
        assert result.trades[0].exit_reason == ExitReason.STOP_LOSS

    async def test_resolved_market_force_closed(self) -> None:
        data = {"m1": [_snap("m1", 0, "0.50"), _snap("m1", 1, "1.00", resolved=True)]}
        strategy = ScriptedStrategy({_t(0): [_signal("m1", 0)]})
        result = await _engine(data).run(strategy, _config(["m1"], end_hours=1))

        trade = result.trades[0]
        assert trade.exit_reason == ExitReason.RESOLVED
        assert trade.exit_time == _t(1)
        assert trade.pnl == Decimal("50.00")

    async def test_expired_signal_closes(self) -> None:
        data = {"m1": _series("m1", ["0.50", "0.50", "0.55"])}
        strategy = ScriptedStrategy({
            _t(0): [_signal("m1", 0, expires_at=_t(1.5))],
        })
        result = await _engine(data).run(strategy, _config(["m1"], end_hours=2))

        trade = result.trades[0]
        assert trade.exit_reason == ExitReason.EXPIRED
        assert trade.exit_time == _t(2)

    async def test_short_take_profit(self) -> None:
        data = {"m1": _series("m1", ["0.70", "0.60", "0.50"])}
        strategy = ScriptedStrategy({
            _t(0): [_signal("m1", 0, SignalType.SELL, take_profit=Decimal("0.50"))],
        })
        result = await _engine(data).run(strategy, _config(["m1"], end_hours=2))

        trade = result.trades[0]
        assert trade.side == SignalType.SELL
        assert trade.exit_reason == ExitReason.TAKE_PROFIT
        assert trade.pnl == Decimal("20.00")

    async def test_open_position_closed_at_end_without_slippage(self) -> None:
        data = {"m1": _series("m1", ["0.50", "0.55", "0.60"])}
        strategy = ScriptedStrategy({_t(0): [_signal("m1", 0)]})
        config = _config(["m1"], end_hours=5, slippage=Decimal("0.01"))
        result = await _engine(data).run(strategy, config)

        trade = result.trades[0]
        assert trade.exit_reason == ExitReason.END_OF_RUN
        assert trade.exit_price == Decimal("0.60")
        assert trade.slippage == Decimal(0)
        assert trade.exit_time == config.end_date
        # No equity point is added for the final close, but equity includes it
        assert len(result.equity_curve) == 3
        assert result.equity_curve[-1].equity == Decimal("10000")
        assert result.summary.final_equity == Decimal("10000") + trade.pnl
        assert len(strategy.results) == 1


class TestCosts:
    async def test_fees_and_slippage(self) -> None:
        data = {"m1": _series("m1", ["0.50", "0.60"])}
        strategy = ScriptedStrategy({
            _t(0): [_signal("m1", 0, take_profit=Decimal("0.60"))],
        })
        config = _config(
            ["m1"], end_hours=1, slippage=Decimal("0.01"), fees=Decimal("0.02"),
        )
        result = await _engine(data).run(strategy, config)

        trade = result.trades[0]
        assert trade.entry_price == Decimal("0.50") * Decimal("1.01")
        assert trade.exit_price == Decimal("0.60") * Decimal("0.99")
        assert trade.fees == 2 * Decimal("0.02") * trade.size
        gross = (trade.exit_price - trade.entry_price) * trade.size
        assert trade.pnl == gross - trade.fees
        assert trade.slippage == (Decimal("0.60") - trade.exit_price) * trade.size

    async def test_defaults_used_when_config_unset(self) -> None:
        data = {"m1": _series("m1", ["0.50", "0.60"])}
        strategy = ScriptedStrategy({
            _t(0): [_signal("m1", 0, take_profit=Decimal("0.60"))],
        })
        config = _config(["m1"], end_hours=1, slippage=None, fees=None)
        engine = BacktestEngine(
            InMemoryDataProvider(data),
            BacktestDefaults(slippage=Decimal("0.005"), fees=Decimal("0.02")),
        )
        result = await engine.run(strategy, config)
        assert result.trades[0].fees == Decimal("4.00")
        assert result.trades[0].entry_price == Decimal("0.5025")


# ── Errors and degenerate runs ──────────────────────────────────


class TestErrorHandling:
    async def test_initialization_failure_aborts_before_data(self) -> None:
        provider = RecordingProvider({"m1": _series("m1", ["0.50"])})
        engine = BacktestEngine(provider, BacktestDefaults())
        config = _config(["m1"], strategy_id="mean-reversion", parameters={"lookback": 1})

        with pytest.raises(StrategyInitializationError) as exc_info:
            await engine.run(MeanReversionStrategy(), config)

        assert isinstance(exc_info.value.__cause__, ParameterError)
        assert provider.requested == []

    async def test_strategy_callback_error_propagates(self) -> None:
        class Exploding(ScriptedStrategy):
            async def generate_signals(self, snapshots: list[MarketSnapshot]) -> list[Signal]:
                raise RuntimeError("boom")

        data = {"m1": _series("m1", ["0.50"])}
        with pytest.raises(RuntimeError, match="boom"):
            await _engine(data).run(Exploding(), _config(["m1"]))

    async def test_no_markets(self) -> None:
        result = await _engine({}).run(ScriptedStrategy(), _config([]))
        assert result.trades == []
        assert result.equity_curve == []
        assert result.drawdowns == []
        assert result.monthly_returns == []
        assert result.summary.total_trades == 0
        assert result.summary.profit_factor == Ratio()
        assert result.metrics.sortino_ratio == Ratio()
        assert result.metrics.ulcer_index == 0.0
        assert result.metrics.cagr == Ratio()

    async def test_market_without_data_excluded(self) -> None:
        provider = RecordingProvider({"m1": _series("m1", ["0.50", "0.51"])})
        engine = BacktestEngine(provider, BacktestDefaults())
        strategy = ScriptedStrategy()
        result = await engine.run(strategy, _config(["m1", "ghost"]))

        assert sorted(provider.requested) == ["ghost", "m1"]
        assert len(result.equity_curve) == 2
        assert strategy.frames == [["m1"], ["m1"]]

    async def test_parameters_passed_to_strategy(self) -> None:
        strategy = ScriptedStrategy()
        await _engine({}).run(strategy, _config([], parameters={"alpha": 1}))
        assert strategy.parameters == {"alpha": 1}


# ── Invariants over a realistic run ─────────────────────────────


def _spiky(market_id: str, n: int = 60) -> list[MarketSnapshot]:
    prices = ["0.30" if i % 10 == 9 else "0.50" for i in range(n)]
    return _series(market_id, prices)


class TestRunInvariants:
    async def _run(self) -> tuple[Any, BacktestConfig]:
        data = {m: _spiky(m) for m in ("a", "b", "c")}
        config = _config(
            ["a", "b", "c"],
            end_hours=59,
            strategy_id="mean-reversion",
            parameters={"lookback": 5, "entry_z": 1.5},
            max_concurrent_positions=2,
            slippage=Decimal("0.005"),
            fees=Decimal("0.02"),
        )
        result = await _engine(data).run(MeanReversionStrategy(), config)
        return result, config

    async def test_trades_generated(self) -> None:
        result, _ = await self._run()
        assert len(result.trades) > 0
        assert result.summary.winning_trades > 0

    async def test_equity_curve_properties(self) -> None:
        result, _ = await self._run()
        curve = result.equity_curve
        assert len(curve) == 60
        for prev, cur in zip(curve, curve[1:]):
            assert cur.timestamp > prev.timestamp
            assert cur.peak >= prev.peak
        for point in curve:
            assert point.drawdown == max(Decimal(0), point.peak - point.equity)

    async def test_trade_times_and_fees(self) -> None:
        result, config = await self._run()
        for trade in result.trades:
            assert trade.entry_time <= trade.exit_time <= config.end_date
            assert trade.fees == 2 * Decimal("0.02") * trade.size

    async def test_cap_and_single_position_per_market(self) -> None:
        result, _ = await self._run()
        for point in result.equity_curve:
            t = point.timestamp
            open_now = [tr for tr in result.trades if tr.entry_time <= t < tr.exit_time]
            assert len(open_now) <= 2
            markets = [tr.market_id for tr in open_now]
            assert len(markets) == len(set(markets))


# ── Degenerate ratios ───────────────────────────────────────────


class TestUnboundedRatios:
    async def test_all_winning_run(self) -> None:
        data = {
            "a": _series("a", ["0.40", "0.60"]),
            "b": _series("b", ["0.30", "0.50"]),
        }
        strategy = ScriptedStrategy({
            _t(0): [
                _signal("a", 0, take_profit=Decimal("0.60")),
                _signal("b", 0, take_profit=Decimal("0.50")),
            ],
        })
        result = await _engine(data).run(strategy, _config(["a", "b"], end_hours=1))

        assert [t.exit_reason for t in result.trades] == [ExitReason.TAKE_PROFIT] * 2
        assert result.summary.losing_trades == 0
        assert result.summary.profit_factor == UNBOUNDED
        assert result.metrics.payoff_ratio == UNBOUNDED

    async def test_sub_day_profitable_run(self) -> None:
        data = {"m1": _series("m1", ["0.40", "0.90"])}
        strategy = ScriptedStrategy(
            {_t(0): [_signal("m1", 0, take_profit=Decimal("0.90"))]},
            size=Decimal("5000"),
        )
        result = await _engine(data).run(strategy, _config(["m1"], end_hours=1))

        assert result.trades[0].pnl == Decimal("2500")
        assert result.summary.final_equity == Decimal("12500")
        assert result.metrics.cagr == UNBOUNDED
        assert result.metrics.calmar_ratio == Ratio()
