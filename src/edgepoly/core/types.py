"""Domain types for market data and strategy signals — prices use Decimal."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field


def new_id() -> str:
    """Return a short random identifier for signals and trades."""
    return uuid.uuid4().hex[:16]


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so all timestamps compare safely."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


# ── Market Data Types ──────────────────────────────────────────


class OutcomeSnapshot(BaseModel):
    """Price state of a single outcome token at a point in time."""

    id: str
    name: str = ""
    price: Decimal
    previous_price: Decimal = Decimal("0")
    price_change_24h: Decimal = Decimal("0")
    volume_24h: Decimal = Decimal("0")


class MarketSnapshot(BaseModel):
    """State of one prediction market at a single timestamp.

    The first outcome is the traded outcome; its price is the market's
    current price for entry, exit and stop/target checks.
    """

    id: str
    question: str = ""
    outcomes: list[OutcomeSnapshot] = Field(min_length=1)
    volume: Decimal = Decimal("0")
    volume_24h: Decimal = Decimal("0")
    liquidity: Decimal = Decimal("0")
    resolved: bool = False
    resolution_outcome: str | None = None
    end_date: UtcDatetime | None = None
    timestamp: UtcDatetime

    @property
    def price(self) -> Decimal:
        return self.outcomes[0].price

    @property
    def outcome_id(self) -> str:
        return self.outcomes[0].id


# ── Signal Types ───────────────────────────────────────────────


class SignalType(StrEnum):
    """What a strategy wants to do with a market."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    CLOSE = "CLOSE"


class SignalOutcome(StrEnum):
    """Outcome classification reported back to a strategy."""

    WIN = "WIN"
    LOSS = "LOSS"
    BREAKEVEN = "BREAKEVEN"
    PENDING = "PENDING"


class Signal(BaseModel):
    """A candidate trade produced by a strategy."""

    id: str = Field(default_factory=new_id)
    strategy_id: str = ""
    market_id: str
    outcome_id: str = ""
    type: SignalType
    strength: int = Field(default=3, ge=1, le=5)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    entry_price: Decimal | None = None
    target_price: Decimal | None = None
    stop_loss: Decimal | None = None
    take_profit: Decimal | None = None
    size: Decimal | None = None
    reasoning: str = ""
    indicators: dict[str, float] = Field(default_factory=dict)
    timestamp: UtcDatetime
    expires_at: UtcDatetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SignalResult(BaseModel):
    """What happened to a signal once its position was closed."""

    signal_id: str
    executed: bool = True
    entry_price: Decimal
    exit_price: Decimal | None = None
    pnl: Decimal | None = None
    pnl_percent: Decimal | None = None
    holding_period: float | None = None  # hours
    outcome: SignalOutcome = SignalOutcome.PENDING
