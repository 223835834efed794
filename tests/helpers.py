"""Builders and in-memory sources shared by the test modules."""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from twr_engine.core.enums import ActivityKind, Granularity
from twr_engine.core.references import (
    AccountRef,
    CashFlowEvent,
    DateRange,
    EquitySnapshot,
)

BASE_DAY = date(2024, 3, 1)


def day(offset: int) -> date:
    return BASE_DAY + timedelta(days=offset)


def snapshots(*equities, start: int = 0) -> List[EquitySnapshot]:
    """One snapshot per consecutive day starting at ``day(start)``."""
    return [
        EquitySnapshot(day=day(start + i), equity=Decimal(str(e)))
        for i, e in enumerate(equities)
    ]


def deposit(offset: int, amount, event_id: Optional[str] = None) -> CashFlowEvent:
    return CashFlowEvent(id=event_id, day=day(offset), kind=ActivityKind.DEPOSIT, amount=Decimal(str(amount)))


def withdrawal(offset: int, amount, event_id: Optional[str] = None) -> CashFlowEvent:
    return CashFlowEvent(id=event_id, day=day(offset), kind=ActivityKind.WITHDRAWAL, amount=Decimal(str(amount)))


def activity(event_id: str, offset: int, kind: str = "CSD", amount="100") -> Dict:
    """Raw ledger record as returned by the activities endpoint."""
    return {
        "id": event_id,
        "activity_type": kind,
        "date": day(offset).isoformat(),
        "net_amount": str(amount),
    }


def account(account_id: str, **kwargs) -> AccountRef:
    kwargs.setdefault("api_key", "key")
    kwargs.setdefault("api_secret", "secret")
    return AccountRef(account_id=account_id, **kwargs)


def full_range(last: int = 30, first: int = 0) -> DateRange:
    return DateRange(start=day(first), end=day(last))


class FakeBroker:
    """
    In-memory implementation of the snapshot, cash-flow and live-balance sources.

    ``failures`` maps ``(account_id, operation)`` to an exception raised by
    that operation; ``delays`` maps the same keys to seconds to sleep first.
    """

    def __init__(
        self,
        snapshots: Optional[Dict[str, List[EquitySnapshot]]] = None,
        activities: Optional[Dict[str, List[Dict]]] = None,
        equities: Optional[Dict[str, Decimal]] = None,
        failures: Optional[Dict[tuple, Exception]] = None,
        delays: Optional[Dict[tuple, float]] = None,
    ) -> None:
        self.snapshots = snapshots or {}
        self.activities = activities or {}
        self.equities = equities or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls: List[tuple] = []

    async def _enter(self, account_id: str, operation: str) -> None:
        self.calls.append((account_id, operation))
        delay = self.delays.get((account_id, operation))
        if delay:
            await asyncio.sleep(delay)
        error = self.failures.get((account_id, operation))
        if error is not None:
            raise error

    async def fetch_snapshots(self, account, start, end, granularity=Granularity.ONE_DAY):
        await self._enter(account.account_id, "snapshots")
        return [s for s in self.snapshots.get(account.account_id, []) if start <= s.day <= end]

    async def fetch_activity_page(self, account, date_range, page_token, page_size):
        await self._enter(account.account_id, "activities")
        records = self.activities.get(account.account_id, [])
        start = 0
        if page_token is not None:
            ids = [r["id"] for r in records]
            start = ids.index(page_token) + 1
        return records[start:start + page_size]

    async def current_equity(self, account):
        await self._enter(account.account_id, "equity")
        return self.equities[account.account_id]
