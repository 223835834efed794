"""
Multi-account TWR aggregation.

Features:
- Concurrent per-account fetch of snapshots and cash flows (fan-out/fan-in)
- Partial-success policy with per-account failure reporting
- Day-by-day equity and flow summation
- Aggregate TWR recurrence over summed equities
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from twr_engine.core.config import settings
from twr_engine.core.enums import FillPolicy, FlowAttribution, Granularity
from twr_engine.core.errors.base import (
    InsufficientDataError,
    NetworkError,
    PartialFetchError,
    ValidationError,
)
from twr_engine.core.errors.decorators import error_handler
from twr_engine.core.logging.logger import get_logger
from twr_engine.core.references import (
    AccountRef,
    CashFlowEvent,
    CashFlowSource,
    DateRange,
    EquitySnapshot,
    SnapshotSource,
    TWRPoint,
)
from .calculator import IntervalFlowCursor, ReturnCompounder, ordered_snapshots
from .ledger import CashFlowLedger, components_by_day, net_flows_by_day

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class AccountFetch:
    """Result slot for one account's concurrent fetches."""
    account: AccountRef
    snapshots: Optional[List[EquitySnapshot]] = None
    flows: Optional[List[CashFlowEvent]] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.snapshots is not None and self.flows is not None


@dataclass
class AggregateResult:
    """Aggregate series plus which accounts contributed to it."""
    points: List[TWRPoint]
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    errors: Dict[str, Exception] = field(default_factory=dict)
    start_balance: Decimal = ZERO

    @property
    def partial(self) -> bool:
        return bool(self.failed)

    def raise_for_partial(self) -> "AggregateResult":
        """Raise PartialFetchError if any account failed, else return self."""
        if self.failed:
            raise PartialFetchError(
                f"{len(self.failed)} of {len(self.succeeded) + len(self.failed)} accounts unavailable",
                succeeded=self.succeeded,
                failed=self.failed,
                errors=self.errors,
                result=self,
            )
        return self


def _ordered_or_empty(snapshots: Iterable[EquitySnapshot]) -> List[EquitySnapshot]:
    try:
        return ordered_snapshots(snapshots)
    except InsufficientDataError:
        return []


def sum_equities(
    snapshot_sets: Sequence[Sequence[EquitySnapshot]],
    fill_policy: FillPolicy = FillPolicy.NONE,
) -> Dict[date, Decimal]:
    """
    Total equity per day over the union of snapshot days.

    With ``FillPolicy.NONE`` an account contributes only on days it has a
    snapshot. With ``FillPolicy.FORWARD_FILL`` it contributes its last known
    equity on every later day from its first snapshot on.
    """
    per_account = [_ordered_or_empty(snapshots) for snapshots in snapshot_sets]
    days = sorted({s.day for series in per_account for s in series})
    totals: Dict[date, Decimal] = {day: ZERO for day in days}

    for series in per_account:
        if not series:
            continue
        if fill_policy == FillPolicy.NONE:
            for snapshot in series:
                totals[snapshot.day] += snapshot.equity
            continue

        by_day = {s.day: s.equity for s in series}
        last_known: Optional[Decimal] = None
        for day in days:
            if day in by_day:
                last_known = by_day[day]
            if last_known is not None:
                totals[day] += last_known
    return totals


def aggregate_series(
    snapshot_sets: Sequence[Sequence[EquitySnapshot]],
    flow_sets: Sequence[Iterable[CashFlowEvent]],
    fill_policy: FillPolicy = FillPolicy.NONE,
    flow_attribution: FlowAttribution = FlowAttribution.SAME_DAY,
) -> List[TWRPoint]:
    """
    Combine already-fetched account data into one aggregate TWR series.

    One point per day present in any account's snapshots. Each day's return
    is computed on summed equity less the summed flow attributed to it.
    """
    equity_by_day = sum_equities(snapshot_sets, fill_policy)
    if not equity_by_day:
        return []

    events = [event for flows in flow_sets for event in flows]
    components = components_by_day(events)
    same_day = net_flows_by_day(events)
    cursor = IntervalFlowCursor(events)
    compounder = ReturnCompounder()

    points: List[TWRPoint] = []
    prev_equity: Optional[Decimal] = None
    for i, day in enumerate(sorted(equity_by_day)):
        equity = equity_by_day[day]
        deposits, withdrawals = components.get(day, (ZERO, ZERO))
        interval = cursor.advance(day)
        if i == 0:
            flow = ZERO
        elif flow_attribution == FlowAttribution.INTERVAL:
            flow = interval
        else:
            flow = same_day.get(day, ZERO)

        pnl = equity - prev_equity if prev_equity is not None else ZERO
        pnl_pct = pnl / prev_equity * HUNDRED if prev_equity else ZERO

        daily_return = compounder.step(day, equity, flow)
        points.append(
            TWRPoint(
                day=day,
                equity=equity,
                pnl=pnl,
                pnl_pct=pnl_pct,
                deposits=deposits,
                withdrawals=withdrawals,
                net_cash_flow=deposits - withdrawals,
                daily_return=daily_return,
                cumulative_twr=compounder.cumulative_twr,
            )
        )
        prev_equity = equity
    return points


def aggregate_start_balance(snapshot_sets: Sequence[Sequence[EquitySnapshot]]) -> Decimal:
    """Sum of each account's first non-zero equity."""
    total = ZERO
    for snapshots in snapshot_sets:
        for snapshot in _ordered_or_empty(snapshots):
            if snapshot.equity > 0:
                total += snapshot.equity
                break
    return total


class MultiAccountAggregator:
    """
    Fetches many accounts concurrently and aggregates their TWR.

    Every account gets two independent tasks (snapshots, cash flows) that
    write into that account's own slot. All summation happens after the
    join, on the calling task.
    """

    def __init__(
        self,
        snapshot_source: SnapshotSource,
        cash_flow_source: CashFlowSource,
        fill_policy: Optional[FillPolicy] = None,
        flow_attribution: Optional[FlowAttribution] = None,
        granularity: Optional[Granularity] = None,
    ) -> None:
        self.snapshot_source = snapshot_source
        self.ledger = CashFlowLedger(cash_flow_source)
        self.fill_policy = fill_policy or settings.aggregation.FILL_POLICY
        self.flow_attribution = flow_attribution or settings.aggregation.FLOW_ATTRIBUTION
        self.granularity = granularity or settings.broker.HISTORY_GRANULARITY
        self.logger = get_logger("multi_account_aggregator")

    async def _fetch_snapshots(self, slot: AccountFetch, date_range: DateRange) -> None:
        try:
            slot.snapshots = await self.snapshot_source.fetch_snapshots(
                slot.account, date_range.start, date_range.end, self.granularity
            )
        except Exception as e:
            slot.error = slot.error or e

    async def _fetch_flows(self, slot: AccountFetch, date_range: DateRange) -> None:
        try:
            slot.flows = await self.ledger.fetch_cash_flows(slot.account, date_range)
        except Exception as e:
            slot.error = slot.error or e

    async def fetch_accounts(
        self,
        accounts: Sequence[AccountRef],
        date_range: DateRange,
        timeout: Optional[float] = None,
    ) -> List[AccountFetch]:
        """
        Run every account's fetches concurrently and wait for all of them.

        Fetches still running after ``timeout`` seconds are cancelled and
        their accounts marked as failed.
        """
        slots = [AccountFetch(account=account) for account in accounts]
        owners: Dict["asyncio.Task[None]", AccountFetch] = {}
        for slot in slots:
            owners[asyncio.create_task(self._fetch_snapshots(slot, date_range))] = slot
            owners[asyncio.create_task(self._fetch_flows(slot, date_range))] = slot

        if not owners:
            return slots

        pending: set = set(owners)
        try:
            _, pending = await asyncio.wait(owners.keys(), timeout=timeout)
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for task in pending:
            slot = owners[task]
            if slot.error is None:
                slot.error = NetworkError(
                    "Account fetch timed out",
                    context={"account_id": slot.account.account_id, "timeout": timeout},
                )
        return slots

    @error_handler(
        context_extractor=lambda self, accounts, date_range, **kwargs: {
            "account_count": len(accounts),
            "start": date_range.start.isoformat(),
            "end": date_range.end.isoformat(),
        },
        log_message="Aggregate TWR computation failed",
    )
    async def compute_aggregate_twr(
        self,
        accounts: Sequence[AccountRef],
        date_range: DateRange,
        timeout: Optional[float] = None,
    ) -> AggregateResult:
        """
        Aggregate TWR over every account that could be fetched.

        Args:
            accounts: Accounts to include.
            date_range: Inclusive day range to fetch.
            timeout: Caller-level timeout in seconds for the whole fan-out.
                Defaults to ``AGGREGATION__FETCH_TIMEOUT_SECONDS``.

        Returns:
            AggregateResult with the series and the succeeded/failed account ids.

        Raises:
            ValidationError: If no accounts are given.
            PartialFetchError: If no account could be fetched.
        """
        accounts = list(accounts)
        if not accounts:
            raise ValidationError("No accounts to aggregate")
        if timeout is None:
            timeout = settings.aggregation.FETCH_TIMEOUT_SECONDS

        started = time.perf_counter()
        slots = await self.fetch_accounts(accounts, date_range, timeout)

        succeeded = [slot for slot in slots if slot.ok]
        failed = [slot for slot in slots if not slot.ok]
        errors = {slot.account.account_id: slot.error for slot in failed if slot.error}
        if not succeeded:
            raise PartialFetchError(
                "No account could be fetched",
                succeeded=[],
                failed=[slot.account.account_id for slot in failed],
                errors=errors,
            )

        snapshot_sets = self._clamp_to_first_trade(succeeded)
        points = aggregate_series(
            snapshot_sets,
            [slot.flows for slot in succeeded],
            fill_policy=self.fill_policy,
            flow_attribution=self.flow_attribution,
        )
        result = AggregateResult(
            points=points,
            succeeded=[slot.account.account_id for slot in succeeded],
            failed=[slot.account.account_id for slot in failed],
            errors=errors,
            start_balance=aggregate_start_balance(snapshot_sets),
        )

        if result.partial:
            self.logger.warning(
                "Aggregate computed from partial account data",
                succeeded=result.succeeded,
                failed=result.failed,
            )
        await self.logger.log_performance(
            "compute_aggregate_twr",
            (time.perf_counter() - started) * 1000,
            {"account_count": len(accounts), "point_count": len(points)},
        )
        return result

    @staticmethod
    def _clamp_to_first_trade(slots: Sequence[AccountFetch]) -> List[List[EquitySnapshot]]:
        """Drop snapshots before the earliest first trade date among the accounts."""
        first_trades = [s.account.first_trade_date for s in slots if s.account.first_trade_date]
        snapshot_sets = [list(slot.snapshots or []) for slot in slots]
        if not first_trades:
            return snapshot_sets
        earliest = min(first_trades)
        return [[s for s in snapshots if s.day >= earliest] for snapshots in snapshot_sets]
