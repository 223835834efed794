"""
Engine-wide constants.

Values here are fixed by the return math or by the broker feed format.
Tunable policy (thresholds, timeouts, page sizes) lives in settings.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Union

# Base Types
DateString = str  # Format: YYYY-MM-DD
Numeric = Union[int, float, Decimal]


class ConstantBase:
    """Mixin that provides a dictionary representation of constants."""
    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EngineConstants(ConstantBase):
    """Return calculation constants."""
    TRADING_DAYS_PER_YEAR: int = 252
    MIN_CORRELATION_DAYS: int = 3
    MIN_VOLATILITY_RETURNS: int = 2

    # Volatility ratio reported when the benchmark has no variance
    NEUTRAL_VOLATILITY_RATIO: float = 1.0
    NEUTRAL_CORRELATION: float = 0.0


@dataclass(frozen=True)
class FeedConstants(ConstantBase):
    """Broker feed format constants."""
    LEDGER_DIRECTION: str = "asc"
    ACTIVITY_TYPES: str = "CSD,CSW"


engine_constants = EngineConstants()
feed_constants = FeedConstants()
