"""Core module — config, types, logging."""

from edgepoly.core.config import Settings, get_settings, load_settings, reset_settings
from edgepoly.core.logging import setup_logging
from edgepoly.core.types import (
    MarketSnapshot,
    OutcomeSnapshot,
    Signal,
    SignalOutcome,
    SignalResult,
    SignalType,
)

__all__ = [
    "MarketSnapshot",
    "OutcomeSnapshot",
    "Settings",
    "Signal",
    "SignalOutcome",
    "SignalResult",
    "SignalType",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
