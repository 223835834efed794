"""
Central reference point for engine value objects and collaborator interfaces.

This file includes:
- Frozen pydantic models for snapshots, cash flows, TWR points, date ranges
  and account references.
- Protocol definitions for the snapshot, cash-flow and live-balance sources.
- Shared type aliases.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import (
    Any, Dict, List, Optional, Protocol, Union, runtime_checkable
)

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from twr_engine.core.enums import ActivityKind, Granularity

# =============================================================================
# Type Aliases
# =============================================================================

ActivityRecord = Dict[str, Any]
# Ledger pages arrive either as a bare list or as {"activities": [...], "next_page_token": ...}
ActivityPage = Union[List[ActivityRecord], Dict[str, Any]]

# =============================================================================
# Value Objects
# =============================================================================

class DateRange(BaseModel):
    """Inclusive range of calendar days."""
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")
        return self


class AccountRef(BaseModel):
    """A brokerage account and the credentials used to read it."""
    model_config = ConfigDict(frozen=True)

    account_id: str = Field(..., min_length=1)
    name: str = ""
    api_key: SecretStr = Field(default=SecretStr(""))
    api_secret: SecretStr = Field(default=SecretStr(""))
    live: bool = Field(False, description="Live account when true, paper otherwise")
    first_trade_date: Optional[date] = None


class EquitySnapshot(BaseModel):
    """One day's recorded equity for an account."""
    model_config = ConfigDict(frozen=True)

    day: date
    equity: Decimal = Field(..., ge=0)
    pnl: Decimal = Decimal("0")
    pnl_pct: Decimal = Decimal("0")


class CashFlowEvent(BaseModel):
    """
    A deposit or withdrawal.

    ``amount`` is always non-negative; the direction comes from ``kind``.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    day: date
    kind: ActivityKind
    amount: Decimal = Field(..., ge=0)

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, v: Any) -> Decimal:
        try:
            return abs(Decimal(str(v)))
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {v!r}")

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.kind == ActivityKind.DEPOSIT else -self.amount


class TWRPoint(BaseModel):
    """
    One day of a time-weighted return series.

    ``cumulative_twr`` holds the cumulative return as a proportion minus one
    (0.05 means +5%). ``synthesized`` marks a point built from a live balance
    rather than a recorded snapshot.
    """
    model_config = ConfigDict(frozen=True)

    day: date
    equity: Decimal
    pnl: Decimal = Decimal("0")
    pnl_pct: Decimal = Decimal("0")
    deposits: Decimal = Decimal("0")
    withdrawals: Decimal = Decimal("0")
    net_cash_flow: Decimal = Decimal("0")
    daily_return: float = 0.0
    cumulative_twr: float = 0.0
    synthesized: bool = False

    @property
    def cumulative_factor(self) -> float:
        """Cumulative growth factor, 1.0 meaning a 0% return."""
        return 1.0 + self.cumulative_twr

    @property
    def cumulative_pct(self) -> float:
        return self.cumulative_twr * 100.0


# =============================================================================
# Protocol Definitions
# =============================================================================

@runtime_checkable
class SnapshotSource(Protocol):
    """Equity history feed."""
    async def fetch_snapshots(
        self,
        account: AccountRef,
        start: date,
        end: date,
        granularity: Granularity = Granularity.ONE_DAY,
    ) -> List[EquitySnapshot]:
        ...


@runtime_checkable
class CashFlowSource(Protocol):
    """Paginated cash-movement feed."""
    async def fetch_activity_page(
        self,
        account: AccountRef,
        date_range: DateRange,
        page_token: Optional[str],
        page_size: int,
    ) -> ActivityPage:
        ...


@runtime_checkable
class LiveBalanceSource(Protocol):
    """Current (intraday) account equity."""
    async def current_equity(self, account: AccountRef) -> Decimal:
        ...
