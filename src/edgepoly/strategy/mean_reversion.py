"""Mean reversion — fade prices that stray far from their rolling mean."""

from __future__ import annotations

import statistics
from collections import deque
from datetime import timedelta
from decimal import Decimal

import structlog

from edgepoly.core.types import MarketSnapshot, Signal, SignalType
from edgepoly.strategy.base import BaseStrategy, ParameterDefinition

logger = structlog.stdlib.get_logger()


class MeanReversionStrategy(BaseStrategy):
    """Buys when the z-score of price drops below ``-entry_z``, sells above ``entry_z``.

    Price history is kept per market and cleared on every ``initialize()``,
    so one instance can be reused across runs.
    """

    strategy_id = "mean-reversion"
    name = "Mean Reversion"
    min_capital = Decimal("100")
    parameter_schema = {
        "lookback": ParameterDefinition(
            type="number", default=20, min=3, max=500,
            description="Snapshots in the rolling window",
        ),
        "entry_z": ParameterDefinition(
            type="number", default=2.0, min=0.5, max=5.0,
            description="Absolute z-score needed to enter",
        ),
        "stop_distance": ParameterDefinition(
            type="number", default=0.05, min=0.0, max=0.5,
            description="Stop-loss distance from entry, in price units",
        ),
        "take_profit_distance": ParameterDefinition(
            type="number", default=0.05, min=0.0, max=0.5,
            description="Take-profit distance from entry, in price units",
        ),
        "hold_hours": ParameterDefinition(
            type="number", default=24, min=0,
            description="Signal lifetime; 0 disables expiry",
        ),
        "max_position_size": ParameterDefinition(
            type="number", default=0.1, min=0.01, max=1.0,
            description="Largest position as a fraction of equity",
        ),
    }

    def __init__(self) -> None:
        super().__init__()
        self._prices: dict[str, deque[float]] = {}

    async def on_initialize(self) -> None:
        self._prices = {}

    async def generate_signals(self, snapshots: list[MarketSnapshot]) -> list[Signal]:
        lookback = int(self.get_parameter("lookback"))
        entry_z = float(self.get_parameter("entry_z"))

        signals: list[Signal] = []
        for snapshot in snapshots:
            window = self._prices.setdefault(snapshot.id, deque(maxlen=lookback))
            window.append(float(snapshot.price))
            if len(window) < lookback:
                continue

            std = statistics.pstdev(window)
            if std == 0:
                continue
            mean = statistics.fmean(window)
            z = (float(snapshot.price) - mean) / std

            if z <= -entry_z:
                signals.append(self._signal(snapshot, SignalType.BUY, z, mean))
            elif z >= entry_z:
                signals.append(self._signal(snapshot, SignalType.SELL, z, mean))
        return signals

    def _signal(
        self,
        snapshot: MarketSnapshot,
        signal_type: SignalType,
        z: float,
        mean: float,
    ) -> Signal:
        price = snapshot.price
        stop = Decimal(str(self.get_parameter("stop_distance")))
        target = Decimal(str(self.get_parameter("take_profit_distance")))
        hold_hours = float(self.get_parameter("hold_hours"))
        entry_z = float(self.get_parameter("entry_z"))

        if signal_type == SignalType.BUY:
            stop_loss, take_profit = price - stop, price + target
        else:
            stop_loss, take_profit = price + stop, price - target

        excess = abs(z) - entry_z
        strength = min(5, 2 + int(excess))
        confidence = min(0.95, 0.55 + 0.1 * excess)
        expires_at = (
            snapshot.timestamp + timedelta(hours=hold_hours) if hold_hours > 0 else None
        )

        logger.debug(
            "mean_reversion_signal",
            market_id=snapshot.id,
            type=signal_type,
            z_score=round(z, 3),
        )
        return self.create_signal(
            snapshot,
            signal_type,
            strength,
            confidence,
            entry_price=price,
            target_price=take_profit,
            stop_loss=stop_loss,
            take_profit=take_profit,
            expires_at=expires_at,
            reasoning=f"z={z:.2f} vs mean={mean:.4f}",
            indicators={"z_score": z, "mean": mean},
        )
