"""
High-level TWR service.

Wires the ledger, calculators and today-point overlay together for one
account or a set of accounts. The historical series is always returned;
the today point is a best-effort overlay bounded by
``TODAY__TIMEOUT_SECONDS``.
"""

import asyncio
import dataclasses
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from twr_engine.core.config import settings
from twr_engine.core.enums import TodayWritePolicy
from twr_engine.core.errors.base import BaseError
from twr_engine.core.errors.decorators import error_handler
from twr_engine.core.logging.logger import get_logger
from twr_engine.core.references import (
    AccountRef,
    CashFlowEvent,
    CashFlowSource,
    DateRange,
    LiveBalanceSource,
    SnapshotSource,
    TWRPoint,
)
from .aggregator import AggregateResult, MultiAccountAggregator
from .calculator import compute_twr
from .ledger import CashFlowLedger
from .rebase import clamp_and_rebase, trim_leading_inactive
from .today import append_or_update_today, exchange_today


class PerformanceService:
    """
    Per-account and aggregate TWR series, ready for display.

    The service holds no series state between calls; callers that cache a
    series can pass it back through ``refresh_today``.
    """

    def __init__(
        self,
        snapshot_source: SnapshotSource,
        cash_flow_source: CashFlowSource,
        live_source: Optional[LiveBalanceSource] = None,
        today_timeout: Optional[float] = None,
    ) -> None:
        self.snapshot_source = snapshot_source
        self.live_source = live_source
        self.ledger = CashFlowLedger(cash_flow_source)
        self.aggregator = MultiAccountAggregator(snapshot_source, cash_flow_source)
        self.today_timeout = today_timeout or settings.today.TIMEOUT_SECONDS
        self.logger = get_logger("performance_service")

    @classmethod
    def from_client(cls, client, **kwargs) -> "PerformanceService":
        """Build a service whose three sources are one broker client."""
        return cls(client, client, client, **kwargs)

    @error_handler(
        context_extractor=lambda self, account, date_range, **kwargs: {
            "account_id": account.account_id,
            "start": date_range.start.isoformat(),
            "end": date_range.end.isoformat(),
        },
        log_message="Account TWR computation failed",
    )
    async def account_twr(
        self,
        account: AccountRef,
        date_range: DateRange,
        visible_range: Optional[DateRange] = None,
        today: Optional[date] = None,
    ) -> List[TWRPoint]:
        """
        TWR series for one account, rebased to 0% at the visible start.

        Leading days before the account started trading are trimmed. The
        today point, when applicable, is always written.
        """
        snapshots, flows = await asyncio.gather(
            self.snapshot_source.fetch_snapshots(
                account, date_range.start, date_range.end, settings.broker.HISTORY_GRANULARITY
            ),
            self.ledger.fetch_cash_flows(account, date_range),
        )
        series = compute_twr(snapshots, flows)
        series = trim_leading_inactive(series, account.first_trade_date)
        series = await self._overlay_today(
            series, [account], date_range, today, TodayWritePolicy.ALWAYS
        )
        return clamp_and_rebase(series, visible_range or date_range)

    async def aggregate_twr(
        self,
        accounts: Sequence[AccountRef],
        date_range: DateRange,
        visible_range: Optional[DateRange] = None,
        today: Optional[date] = None,
        timeout: Optional[float] = None,
    ) -> AggregateResult:
        """
        Aggregate TWR over ``accounts``, rebased to 0% at the visible start.

        Accounts that failed are listed on the result; call
        ``raise_for_partial()`` to treat them as an error.

        Raises:
            PartialFetchError: If no account could be fetched.
        """
        result = await self.aggregator.compute_aggregate_twr(accounts, date_range, timeout=timeout)
        succeeded = [a for a in accounts if a.account_id in set(result.succeeded)]
        points = await self._overlay_today(
            result.points, succeeded, date_range, today, TodayWritePolicy.THRESHOLD
        )
        return dataclasses.replace(
            result, points=clamp_and_rebase(points, visible_range or date_range)
        )

    async def refresh_today(
        self,
        series: Sequence[TWRPoint],
        accounts: Sequence[AccountRef],
        date_range: DateRange,
        today: Optional[date] = None,
        policy: TodayWritePolicy = TodayWritePolicy.THRESHOLD,
    ) -> List[TWRPoint]:
        """Re-synthesize the today point of a previously returned series."""
        return await self._overlay_today(series, accounts, date_range, today, policy)

    async def _overlay_today(
        self,
        series: Sequence[TWRPoint],
        accounts: Sequence[AccountRef],
        date_range: DateRange,
        today: Optional[date],
        policy: TodayWritePolicy,
    ) -> List[TWRPoint]:
        today = today or exchange_today()
        points = list(series)
        if self.live_source is None or not points or not accounts or not date_range.contains(today):
            return points

        last = points[-1]
        if last.day > today or (last.day == today and not last.synthesized):
            return points
        history = points[:-1] if last.day == today else points
        if not history:
            return points

        try:
            live_equity, flows = await asyncio.wait_for(
                self._today_inputs(accounts, history[-1].day, today),
                timeout=self.today_timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                "Today point skipped; live data timed out",
                timeout=self.today_timeout,
                account_count=len(accounts),
            )
            return points
        except BaseError as e:
            self.logger.warning(
                "Today point skipped; live data unavailable",
                error_context=e.to_dict(),
            )
            return points

        return append_or_update_today(
            points,
            live_equity,
            flows,
            today=today,
            date_range=date_range,
            policy=policy,
        )

    async def _today_inputs(
        self, accounts: Sequence[AccountRef], since: date, today: date
    ) -> Tuple[Decimal, List[CashFlowEvent]]:
        """Summed live equity and flows in (since, today] for ``accounts``."""
        window = DateRange(start=since + timedelta(days=1), end=today)
        equities, flow_sets = await asyncio.gather(
            asyncio.gather(*(self.live_source.current_equity(a) for a in accounts)),
            asyncio.gather(*(self.ledger.fetch_cash_flows(a, window) for a in accounts)),
        )
        live_equity = sum(equities, Decimal("0"))
        flows = [event for events in flow_sets for event in events]
        return live_equity, flows
