#!/usr/bin/env python3
"""Backtest CLI — replay a market history file through a registered strategy.

Usage:
    python -m scripts.backtest history.json --strategy mean-reversion
    python -m scripts.backtest history.json --strategy mean-reversion \\
        --params '{"lookback": 30, "entry_z": 2.5}' --slippage 0 --fees 0.01
    python -m scripts.backtest history.json --strategy mean-reversion --json

History JSON format::

    {
        "name": "Election week",
        "markets": {
            "mkt_1": [
                {
                    "id": "mkt_1",
                    "question": "Will X happen?",
                    "outcomes": [{"id": "yes", "name": "Yes", "price": "0.42"}],
                    "resolved": false,
                    "timestamp": "2024-01-01T00:00:00Z"
                }
            ]
        }
    }
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime
from decimal import Decimal

from edgepoly.backtest.engine import BacktestEngine
from edgepoly.backtest.types import BacktestConfig, BacktestResult
from edgepoly.core.config import load_settings
from edgepoly.core.logging import setup_logging
from edgepoly.data.provider import JsonFileDataProvider
from edgepoly.strategy.registry import available_strategies, create_strategy


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay a market history file through a trading strategy.",
    )
    parser.add_argument("history", help="Path to market history JSON file")
    parser.add_argument(
        "--strategy",
        required=True,
        help=f"Strategy identifier ({', '.join(available_strategies())})",
    )
    parser.add_argument(
        "--params",
        type=json.loads,
        default={},
        help="Strategy parameters as a JSON object",
    )
    parser.add_argument(
        "--start",
        type=datetime.fromisoformat,
        default=None,
        help="Start date, ISO 8601 (default: first snapshot)",
    )
    parser.add_argument(
        "--end",
        type=datetime.fromisoformat,
        default=None,
        help="End date, ISO 8601 (default: last snapshot)",
    )
    parser.add_argument(
        "--capital",
        type=Decimal,
        default=Decimal("10000"),
        help="Initial capital (default: 10000)",
    )
    parser.add_argument(
        "--markets",
        default=None,
        help="Comma-separated market ids (default: every market in the file)",
    )
    parser.add_argument("--max-positions", type=int, default=None)
    parser.add_argument("--slippage", type=Decimal, default=None)
    parser.add_argument("--fees", type=Decimal, default=None)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument("--log-level", default=None)
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON instead of a text report",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, provider: JsonFileDataProvider) -> BacktestConfig:
    """Fill unset dates and markets from the history file."""
    history = provider.history
    span = history.date_range()
    start = args.start or (span[0] if span else None)
    end = args.end or (span[1] if span else None)
    if start is None or end is None:
        raise SystemExit(f"{args.history}: history is empty; pass --start and --end")

    markets = (
        [m.strip() for m in args.markets.split(",") if m.strip()]
        if args.markets
        else list(history.markets)
    )
    return BacktestConfig(
        strategy_id=args.strategy,
        parameters=args.params,
        start_date=start,
        end_date=end,
        initial_capital=args.capital,
        markets=markets,
        max_concurrent_positions=args.max_positions,
        slippage=args.slippage,
        fees=args.fees,
    )


def format_report(result: BacktestResult) -> str:
    s = result.summary
    m = result.metrics
    cfg = result.config
    lines = [
        f"BACKTEST  {cfg.strategy_id}  {cfg.start_date:%Y-%m-%d} → {cfg.end_date:%Y-%m-%d}",
        "-" * 72,
        f"  Markets:          {len(cfg.markets)}",
        f"  Frames:           {len(result.equity_curve)}",
        f"  Initial capital:  {cfg.initial_capital:.2f}",
        f"  Final equity:     {s.final_equity:.2f}",
        f"  Total P&L:        {s.total_pnl:.2f} ({s.total_return:.2%})",
        "",
        f"  Trades:           {s.total_trades}"
        f" (W {s.winning_trades} / L {s.losing_trades} / B {s.breakeven_trades})",
        f"  Win rate:         {s.win_rate:.2%}",
        f"  Avg win / loss:   {s.average_win:.2f} / {s.average_loss:.2f}",
        f"  Profit factor:    {s.profit_factor}",
        f"  Expectancy:       {m.expectancy:.4f}",
        f"  Avg holding:      {s.average_holding_period:.1f}h",
        f"  Exposure:         {s.exposure:.2%}",
        "",
        f"  CAGR:             {m.cagr:.2%}",
        f"  Volatility:       {m.volatility:.4f}",
        f"  Sharpe:           {m.sharpe_ratio:.4f}",
        f"  Sortino:          {m.sortino_ratio}",
        f"  Calmar:           {m.calmar_ratio:.4f}",
        f"  Max drawdown:     {m.max_drawdown:.2%} over {m.max_drawdown_duration:.1f}d",
        f"  Ulcer index:      {m.ulcer_index:.4f}",
        f"  Drawdown periods: {len(result.drawdowns)}",
    ]
    if result.monthly_returns:
        lines += ["", "MONTHLY RETURNS", "-" * 72]
        for mr in result.monthly_returns:
            lines.append(f"  {mr.year}-{mr.month:02d}  {mr.return_pct:+.2%}  trades={mr.trades}")
    return "\n".join(lines)


async def run_backtest(args: argparse.Namespace) -> BacktestResult:
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    provider = JsonFileDataProvider.from_path(args.history)
    config = build_config(args, provider)
    strategy = create_strategy(config.strategy_id)

    engine = BacktestEngine(provider, settings.backtest)
    return await engine.run(strategy, config)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    result = asyncio.run(run_backtest(args))
    if args.json:
        json.dump(result.to_dict(), sys.stdout, indent=2)
        print()
    else:
        print(format_report(result))


if __name__ == "__main__":
    main()
