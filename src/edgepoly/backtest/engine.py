"""Backtest engine — replays historical snapshots through a strategy."""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal

import structlog

from edgepoly.backtest.equity import EquityTracker
from edgepoly.backtest.exceptions import StrategyInitializationError
from edgepoly.backtest.metrics import performance_metrics, summarize
from edgepoly.backtest.periods import drawdown_periods, monthly_returns
from edgepoly.backtest.positions import PositionBook
from edgepoly.backtest.timeline import MarketState, Timeline
from edgepoly.backtest.types import BacktestConfig, BacktestResult
from edgepoly.core.config import BacktestDefaults, get_settings
from edgepoly.core.types import MarketSnapshot
from edgepoly.data.provider import MarketDataProvider
from edgepoly.strategy.base import Strategy

logger = structlog.stdlib.get_logger()


class BacktestEngine:
    """Runs a strategy over historical data for the configured markets.

    Data for all markets is fetched concurrently and fully loaded before
    the first frame; frames are then processed strictly in time order.

    Usage::

        engine = BacktestEngine(provider)
        result = await engine.run(strategy, config)
        print(result.summary.total_pnl)
    """

    def __init__(
        self,
        data_provider: MarketDataProvider,
        defaults: BacktestDefaults | None = None,
    ) -> None:
        self._provider = data_provider
        self._defaults = defaults or get_settings().backtest

    @property
    def defaults(self) -> BacktestDefaults:
        return self._defaults

    async def run(self, strategy: Strategy, config: BacktestConfig) -> BacktestResult:
        """Initialize the strategy, simulate every frame and compute the report.

        Raises:
            StrategyInitializationError: ``strategy.initialize()`` failed.
                Nothing else is attempted in that case.
        """
        started = time.monotonic()
        log = logger.bind(strategy_id=config.strategy_id)

        try:
            await strategy.initialize(config.parameters)
        except Exception as exc:
            log.error("strategy_initialization_failed", error=str(exc))
            raise StrategyInitializationError(
                f"Strategy {config.strategy_id!r} failed to initialize: {exc}"
            ) from exc

        market_data = await self.fetch_market_data(config)
        timeline = Timeline(market_data)

        max_positions = self._option(config.max_concurrent_positions, "max_concurrent_positions")
        slippage = self._option(config.slippage, "slippage")
        fee_rate = self._option(config.fees, "fees")
        min_size = self._option(config.min_position_size, "min_position_size")

        log.info(
            "backtest_started",
            markets=len(timeline.market_ids),
            frames=len(timeline),
            initial_capital=float(config.initial_capital),
            max_positions=max_positions,
            slippage=float(slippage),
            fees=float(fee_rate),
        )

        state = MarketState()
        equity = EquityTracker(config.initial_capital)
        book = PositionBook(
            strategy,
            equity,
            max_positions=max_positions,
            slippage=slippage,
            fee_rate=fee_rate,
            min_size=min_size,
        )

        for frame in timeline:
            state.observe(frame)
            await book.process_frame(frame)
            equity.mark(frame.timestamp)

        book.close_all(state, config.end_date)

        trades = book.trades
        curve = equity.curve
        rf = self._defaults.risk_free_rate

        result = BacktestResult(
            config=config,
            summary=summarize(trades, curve, config.initial_capital, equity.equity, rf),
            trades=trades,
            equity_curve=curve,
            drawdowns=drawdown_periods(curve),
            monthly_returns=monthly_returns(curve, trades),
            metrics=performance_metrics(
                trades,
                curve,
                initial_capital=config.initial_capital,
                final_equity=equity.equity,
                start_date=config.start_date,
                end_date=config.end_date,
                risk_free_rate=rf,
                periods_per_year=self._defaults.periods_per_year,
            ),
        )

        log.info(
            "backtest_completed",
            frames=len(curve),
            signals=book.signals_seen,
            trades=len(trades),
            rejections=book.rejections,
            total_pnl=float(result.summary.total_pnl),
            final_equity=float(equity.equity),
            elapsed_secs=round(time.monotonic() - started, 3),
        )
        return result

    async def fetch_market_data(self, config: BacktestConfig) -> dict[str, list[MarketSnapshot]]:
        """Fetch every configured market's history concurrently."""
        market_ids = list(dict.fromkeys(config.markets))
        histories = await asyncio.gather(*(
            self._provider.get_historical_data(market_id, config.start_date, config.end_date)
            for market_id in market_ids
        ))
        market_data = dict(zip(market_ids, histories))
        for market_id, history in market_data.items():
            logger.debug("market_data_loaded", market_id=market_id, snapshots=len(history))
        return market_data

    def _option(self, value: Decimal | int | None, name: str) -> Decimal | int:
        return value if value is not None else getattr(self._defaults, name)
