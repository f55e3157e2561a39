"""PositionBook — position lifecycle for a backtest run.

Each frame is processed in a fixed order:

1. Exit evaluation for open positions whose market is in the frame
   (stop-loss, take-profit, expiration, resolution; the first match wins).
2. Signal intake: the strategy is asked once for signals on the frame's
   unresolved markets, and accepted signals open new positions.

Realized P&L is pushed into the :class:`EquityTracker` the moment a
position closes.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from decimal import Decimal

import structlog

from edgepoly.backtest.equity import EquityTracker
from edgepoly.backtest.timeline import Frame, MarketState
from edgepoly.backtest.types import ExitReason, Position, Trade
from edgepoly.core.types import (
    MarketSnapshot,
    Signal,
    SignalOutcome,
    SignalResult,
    SignalType,
    new_id,
)
from edgepoly.strategy.base import Strategy

logger = structlog.stdlib.get_logger()

_TRADABLE = (SignalType.BUY, SignalType.SELL)


def apply_slippage(price: Decimal, side: SignalType, slippage: Decimal) -> Decimal:
    """Worsen ``price`` for an order on ``side``: buys pay up, sells receive less."""
    if side == SignalType.BUY:
        return price * (Decimal(1) + slippage)
    return price * (Decimal(1) - slippage)


def closing_side(side: SignalType) -> SignalType:
    return SignalType.SELL if side == SignalType.BUY else SignalType.BUY


def check_exit(position: Position, snapshot: MarketSnapshot, now: datetime) -> ExitReason | None:
    """Return the first exit condition met, in priority order, or None."""
    signal = position.signal
    price = snapshot.price

    if signal.stop_loss is not None:
        if position.is_long and price <= signal.stop_loss:
            return ExitReason.STOP_LOSS
        if not position.is_long and price >= signal.stop_loss:
            return ExitReason.STOP_LOSS

    if signal.take_profit is not None:
        if position.is_long and price >= signal.take_profit:
            return ExitReason.TAKE_PROFIT
        if not position.is_long and price <= signal.take_profit:
            return ExitReason.TAKE_PROFIT

    if signal.expires_at is not None and now > signal.expires_at:
        return ExitReason.EXPIRED

    if snapshot.resolved:
        return ExitReason.RESOLVED

    return None


def classify(pnl: Decimal) -> SignalOutcome:
    """Exact classification; a P&L of exactly zero is breakeven."""
    if pnl > 0:
        return SignalOutcome.WIN
    if pnl < 0:
        return SignalOutcome.LOSS
    return SignalOutcome.BREAKEVEN


class PositionBook:
    """Owns every open position and closed trade of a single run."""

    def __init__(
        self,
        strategy: Strategy,
        equity: EquityTracker,
        *,
        max_positions: int,
        slippage: Decimal,
        fee_rate: Decimal,
        min_size: Decimal,
    ) -> None:
        self._strategy = strategy
        self._equity = equity
        self._max_positions = max_positions
        self._slippage = slippage
        self._fee_rate = fee_rate
        self._min_size = min_size

        self._positions: dict[str, Position] = {}
        self._trades: list[Trade] = []
        self._rejections: Counter[str] = Counter()
        self._signals_seen = 0

    @property
    def positions(self) -> dict[str, Position]:
        """Read-only copy of open positions keyed by market id."""
        return dict(self._positions)

    @property
    def count(self) -> int:
        return len(self._positions)

    @property
    def trades(self) -> list[Trade]:
        return list(self._trades)

    @property
    def rejections(self) -> dict[str, int]:
        return dict(self._rejections)

    @property
    def signals_seen(self) -> int:
        return self._signals_seen

    def get(self, market_id: str) -> Position | None:
        return self._positions.get(market_id)

    async def process_frame(self, frame: Frame) -> None:
        """Run exit evaluation then signal intake for one frame."""
        self.evaluate_exits(frame)
        await self.open_from_signals(frame)

    # ── Exits ───────────────────────────────────────────────────

    def evaluate_exits(self, frame: Frame) -> list[Trade]:
        closed: list[Trade] = []
        for market_id, position in list(self._positions.items()):
            snapshot = frame.get(market_id)
            if snapshot is None:
                continue
            reason = check_exit(position, snapshot, frame.timestamp)
            if reason is None:
                continue
            exit_price = apply_slippage(
                snapshot.price, closing_side(position.side), self._slippage,
            )
            closed.append(self._close(
                position,
                market_price=snapshot.price,
                exit_price=exit_price,
                exit_time=frame.timestamp,
                reason=reason,
            ))
        return closed

    def close_all(self, state: MarketState, exit_time: datetime) -> list[Trade]:
        """Force-close remaining positions at their last observed price, no slippage."""
        closed: list[Trade] = []
        for market_id, position in list(self._positions.items()):
            snapshot = state.last_snapshot(market_id)
            price = snapshot.price if snapshot is not None else position.entry_price
            closed.append(self._close(
                position,
                market_price=price,
                exit_price=price,
                exit_time=max(exit_time, position.entry_time),
                reason=ExitReason.END_OF_RUN,
            ))
        return closed

    def _close(
        self,
        position: Position,
        *,
        market_price: Decimal,
        exit_price: Decimal,
        exit_time: datetime,
        reason: ExitReason,
    ) -> Trade:
        if position.is_long:
            gross = (exit_price - position.entry_price) * position.size
        else:
            gross = (position.entry_price - exit_price) * position.size

        fees = 2 * self._fee_rate * position.size
        pnl = gross - fees
        notional = position.size * position.entry_price
        pnl_pct = gross / notional * 100 if notional else Decimal(0)

        trade = Trade(
            id=new_id(),
            market_id=position.market_id,
            outcome_id=position.outcome_id,
            side=position.side,
            entry_time=position.entry_time,
            exit_time=exit_time,
            entry_price=position.entry_price,
            exit_price=exit_price,
            size=position.size,
            pnl=pnl,
            pnl_percent=pnl_pct,
            fees=fees,
            slippage=abs(exit_price - market_price) * position.size,
            exit_reason=reason,
            signal=position.signal,
        )

        del self._positions[position.market_id]
        self._trades.append(trade)
        equity = self._equity.realize(pnl)

        outcome = classify(pnl)
        logger.debug(
            "position_closed",
            market_id=trade.market_id,
            side=trade.side,
            reason=reason,
            exit_price=float(exit_price),
            pnl=float(pnl),
            equity=float(equity),
        )

        self._strategy.on_signal_executed(position.signal, SignalResult(
            signal_id=position.signal.id,
            executed=True,
            entry_price=position.entry_price,
            exit_price=exit_price,
            pnl=pnl,
            pnl_percent=pnl_pct,
            holding_period=trade.holding_hours,
            outcome=outcome,
        ))
        return trade

    # ── Entries ─────────────────────────────────────────────────

    async def open_from_signals(self, frame: Frame) -> list[Position]:
        """Ask the strategy once for signals on unresolved markets; skipped when there are none."""
        tradable = frame.tradable()
        if not tradable:
            return []

        signals = await self._strategy.generate_signals(tradable)
        self._signals_seen += len(signals)

        opened: list[Position] = []
        for signal in signals:
            reason = await self._rejection_reason(signal, frame)
            if reason is not None:
                self._reject(signal, reason)
                continue

            size = self._strategy.get_position_size(signal, self._equity.equity)
            if not isinstance(size, Decimal):
                size = Decimal(str(size))
            if size < self._min_size:
                self._reject(signal, "below_min_size")
                continue

            snapshot = frame.snapshots[signal.market_id]
            position = Position(
                market_id=signal.market_id,
                outcome_id=signal.outcome_id or snapshot.outcome_id,
                side=signal.type,
                entry_price=apply_slippage(snapshot.price, signal.type, self._slippage),
                entry_time=frame.timestamp,
                size=size,
                signal=signal,
            )
            self._positions[signal.market_id] = position
            opened.append(position)
            logger.debug(
                "position_opened",
                market_id=position.market_id,
                side=position.side,
                entry_price=float(position.entry_price),
                size=float(size),
                open_positions=len(self._positions),
            )
        return opened

    async def _rejection_reason(self, signal: Signal, frame: Frame) -> str | None:
        if len(self._positions) >= self._max_positions:
            return "cap_reached"
        if signal.market_id in self._positions:
            return "duplicate_market"
        if signal.type not in _TRADABLE:
            return "unsupported_type"
        snapshot = frame.get(signal.market_id)
        if snapshot is None or snapshot.resolved:
            return "market_unavailable"
        if not await self._strategy.validate_signal(signal):
            return "invalid_signal"
        return None

    def _reject(self, signal: Signal, reason: str) -> None:
        self._rejections[reason] += 1
        logger.debug(
            "signal_rejected",
            signal_id=signal.id,
            market_id=signal.market_id,
            reason=reason,
        )
