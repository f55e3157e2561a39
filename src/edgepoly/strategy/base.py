"""Strategy capability interface and a reusable base implementation."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field

from edgepoly.core.types import (
    MarketSnapshot,
    Signal,
    SignalOutcome,
    SignalResult,
    SignalType,
)
from edgepoly.strategy.exceptions import ParameterError

logger = structlog.stdlib.get_logger()


@runtime_checkable
class Strategy(Protocol):
    """Operations the backtest engine needs from a strategy.

    Any object providing these members can be backtested; inheriting from
    :class:`BaseStrategy` is optional.
    """

    @property
    def strategy_id(self) -> str: ...

    async def initialize(self, parameters: dict[str, Any]) -> None: ...

    async def generate_signals(self, snapshots: list[MarketSnapshot]) -> list[Signal]: ...

    async def validate_signal(self, signal: Signal) -> bool: ...

    def get_position_size(self, signal: Signal, equity: Decimal) -> Decimal: ...

    def on_signal_executed(self, signal: Signal, result: SignalResult) -> None: ...


class ParameterDefinition(BaseModel):
    """Schema for one tunable strategy parameter."""

    type: Literal["number", "boolean", "string", "select"]
    default: Any = None
    min: float | None = None
    max: float | None = None
    options: list[str] = Field(default_factory=list)
    description: str = ""
    required: bool = False


@dataclass(frozen=True)
class StrategyStatus:
    """Point-in-time view of a strategy's bookkeeping."""

    is_active: bool
    last_signal: Signal | None
    active_positions: int
    total_signals: int
    success_rate: float
    current_exposure: float


_CENT = Decimal("0.01")


class BaseStrategy(abc.ABC):
    """Base class handling parameters, validation, sizing and bookkeeping.

    Subclasses declare ``strategy_id``, ``parameter_schema`` and implement
    ``generate_signals()``. Optional hooks: ``on_initialize()``,
    ``on_validate_signal()``, ``on_signal_result()``.

    Usage::

        strategy = MyStrategy()
        await strategy.initialize({"lookback": 30})
        signals = await strategy.generate_signals(snapshots)
    """

    strategy_id: str = "base"
    name: str = ""
    min_capital: Decimal = Decimal("100")
    parameter_schema: dict[str, ParameterDefinition] = {}

    min_confidence: float = 0.3
    min_strength: int = 2
    kelly_fraction: Decimal = Decimal("0.25")

    def __init__(self) -> None:
        self.parameters: dict[str, Any] = {}
        self._initialized = False
        self._signals: list[Signal] = []
        self._results: list[SignalResult] = []
        self._active_positions = 0

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize(self, parameters: dict[str, Any]) -> None:
        """Merge ``parameters`` over the schema defaults and validate them.

        Raises:
            ParameterError: A parameter is missing, of the wrong type or
                out of range.
        """
        merged = {key: spec.default for key, spec in self.parameter_schema.items()}
        merged.update(parameters)
        self.parameters = merged
        self._validate_parameters()
        self._initialized = True
        await self.on_initialize()
        logger.debug("strategy_initialized", strategy_id=self.strategy_id, parameters=merged)

    async def on_initialize(self) -> None:
        """Hook run after parameters are validated."""

    def _validate_parameters(self) -> None:
        for key, spec in self.parameter_schema.items():
            value = self.parameters.get(key)
            if value is None:
                if spec.required:
                    raise ParameterError(f"Required parameter '{key}' is missing")
                continue

            if spec.type == "number":
                if isinstance(value, bool) or not isinstance(value, int | float | Decimal):
                    raise ParameterError(f"Parameter '{key}' must be a number")
                if spec.min is not None and value < spec.min:
                    raise ParameterError(f"Parameter '{key}' must be >= {spec.min}")
                if spec.max is not None and value > spec.max:
                    raise ParameterError(f"Parameter '{key}' must be <= {spec.max}")
            elif spec.type == "boolean":
                if not isinstance(value, bool):
                    raise ParameterError(f"Parameter '{key}' must be a boolean")
            elif spec.type == "select" and spec.options and value not in spec.options:
                raise ParameterError(
                    f"Parameter '{key}' must be one of: {', '.join(spec.options)}"
                )

    def reset(self) -> None:
        """Forget recorded signals and results."""
        self._signals = []
        self._results = []
        self._active_positions = 0

    def get_parameter(self, key: str) -> Any:
        return self.parameters.get(key)

    # ── Signals ─────────────────────────────────────────────────

    @abc.abstractmethod
    async def generate_signals(self, snapshots: list[MarketSnapshot]) -> list[Signal]:
        """Produce candidate signals for the given snapshots."""

    async def validate_signal(self, signal: Signal) -> bool:
        """Reject weak or expired signals, then defer to ``on_validate_signal``."""
        if signal.confidence < self.min_confidence:
            return False
        if signal.strength < self.min_strength:
            return False
        if signal.expires_at is not None and signal.timestamp >= signal.expires_at:
            return False
        return await self.on_validate_signal(signal)

    async def on_validate_signal(self, signal: Signal) -> bool:
        """Strategy-specific validation hook."""
        return True

    def create_signal(
        self,
        snapshot: MarketSnapshot,
        signal_type: SignalType,
        strength: int,
        confidence: float,
        **options: Any,
    ) -> Signal:
        """Build a signal for ``snapshot`` and record it."""
        signal = Signal(
            strategy_id=self.strategy_id,
            market_id=snapshot.id,
            outcome_id=snapshot.outcome_id,
            type=signal_type,
            strength=strength,
            confidence=confidence,
            timestamp=options.pop("timestamp", snapshot.timestamp),
            **options,
        )
        self._signals.append(signal)
        return signal

    # ── Sizing ──────────────────────────────────────────────────

    def get_position_size(self, signal: Signal, equity: Decimal) -> Decimal:
        """Fractional-Kelly size scaled by confidence and strength.

        Capped at ``max_position_size`` (fraction of equity, default 0.1)
        and floored at 1% of ``min_capital``.
        """
        kelly = self.kelly(signal) * self.kelly_fraction
        size = (
            equity
            * kelly
            * Decimal(str(signal.confidence))
            * Decimal(signal.strength)
            / Decimal(5)
        )

        max_fraction = Decimal(str(self.parameters.get("max_position_size") or "0.1"))
        size = min(size, equity * max_fraction)
        size = max(size, self.min_capital * Decimal("0.01"))
        return size.quantize(_CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def kelly(signal: Signal) -> Decimal:
        """Kelly fraction f* = (b·p − q) / b from the signal's target and stop.

        Missing prices default to 0.5 entry with ±0.10 target/stop.
        """
        p = Decimal(str(signal.confidence))
        q = Decimal(1) - p

        entry = signal.entry_price or Decimal("0.5")
        target = signal.target_price or entry + Decimal("0.1")
        stop = signal.stop_loss or entry - Decimal("0.1")

        potential_win = abs(target - entry)
        potential_loss = abs(entry - stop)
        if potential_loss == 0 or potential_win == 0:
            return Decimal(0)

        b = potential_win / potential_loss
        return max(Decimal(0), (b * p - q) / b)

    # ── Feedback ────────────────────────────────────────────────

    def on_signal_executed(self, signal: Signal, result: SignalResult) -> None:
        """Record the result of one of this strategy's signals."""
        self._results.append(result)
        if result.executed:
            if result.outcome == SignalOutcome.PENDING:
                self._active_positions += 1
            else:
                self._active_positions = max(0, self._active_positions - 1)
        self.on_signal_result(signal, result)

    def on_signal_result(self, signal: Signal, result: SignalResult) -> None:
        """Hook called after each recorded result."""

    # ── Status ──────────────────────────────────────────────────

    def current_exposure(self) -> float:
        return 0.0

    def status(self) -> StrategyStatus:
        completed = [r for r in self._results if r.outcome != SignalOutcome.PENDING]
        wins = sum(1 for r in completed if r.outcome == SignalOutcome.WIN)
        return StrategyStatus(
            is_active=self._initialized,
            last_signal=self._signals[-1] if self._signals else None,
            active_positions=self._active_positions,
            total_signals=len(self._signals),
            success_rate=wins / len(completed) if completed else 0.0,
            current_exposure=self.current_exposure(),
        )
