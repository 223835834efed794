"""
Per-account time-weighted return calculation.

Each snapshot day gets a daily return computed on cash-flow adjusted
equity, and the daily returns compound into a cumulative TWR:

    daily_return_i = (equity_i - flow_i) / equity_{i-1} - 1
    cumulative_i   = cumulative_{i-1} * (1 + daily_return_i)

``flow_i`` is the net flow in (day_{i-1}, day_i] by default. A zero previous
equity marks a trading restart: the return is zero and the compounding base
resets to 1.0 once equity turns positive again. A non-positive adjusted
equity yields a zero return for that day.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from twr_engine.core.enums import FlowAttribution
from twr_engine.core.errors.base import DegenerateIntervalError, InsufficientDataError
from twr_engine.core.logging.logger import get_logger
from twr_engine.core.references import CashFlowEvent, EquitySnapshot, TWRPoint
from .ledger import components_by_day, net_flows_by_day

logger = get_logger(__name__)

ZERO = Decimal("0")


def period_return(prev_equity: Decimal, equity: Decimal, flow: Decimal) -> float:
    """
    Return for one period with ``flow`` removed from the closing equity.

    Raises:
        DegenerateIntervalError: If the adjusted equity is not positive.
    """
    adjusted = equity - flow
    if adjusted <= 0:
        raise DegenerateIntervalError(
            "Non-positive adjusted equity",
            context={
                "prev_equity": str(prev_equity),
                "equity": str(equity),
                "flow": str(flow),
            },
        )
    return float(adjusted / prev_equity) - 1.0


@dataclass
class ReturnCompounder:
    """Running state of the TWR recurrence."""
    cumulative: float = 1.0
    started: bool = False
    prev_equity: Optional[Decimal] = None
    degenerate_days: List[date] = field(default_factory=list)

    def step(self, day: date, equity: Decimal, flow: Decimal) -> float:
        """Advance one period and return its daily return."""
        daily_return = 0.0
        if self.prev_equity is None or self.prev_equity == 0:
            if equity > 0:
                self.cumulative = 1.0
                self.started = True
        elif self.started:
            try:
                daily_return = period_return(self.prev_equity, equity, flow)
            except DegenerateIntervalError as e:
                self.degenerate_days.append(day)
                logger.debug(e.message, day=day, **e.context)
            else:
                self.cumulative *= 1.0 + daily_return
        self.prev_equity = equity
        return daily_return

    @property
    def cumulative_twr(self) -> float:
        return self.cumulative - 1.0


def ordered_snapshots(snapshots: Iterable[EquitySnapshot]) -> List[EquitySnapshot]:
    """
    Sort snapshots by day keeping the last snapshot seen for each day.

    Raises:
        InsufficientDataError: If there are no snapshots.
    """
    by_day: Dict[date, EquitySnapshot] = {}
    for snapshot in snapshots:
        by_day[snapshot.day] = snapshot
    if not by_day:
        raise InsufficientDataError("No equity snapshots")
    return [by_day[day] for day in sorted(by_day)]


class IntervalFlowCursor:
    """
    Sums flows between consecutive, ascending days in one pass.

    ``advance(day)`` returns the net flow of events after the previously
    advanced day up to and including ``day``.
    """

    def __init__(self, events: Iterable[CashFlowEvent]) -> None:
        self._events = sorted(events, key=lambda e: e.day)
        self._index = 0

    def advance(self, day: date) -> Decimal:
        total = ZERO
        while self._index < len(self._events) and self._events[self._index].day <= day:
            total += self._events[self._index].signed_amount
            self._index += 1
        return total


def compute_twr(
    snapshots: Sequence[EquitySnapshot],
    flows: Iterable[CashFlowEvent],
    flow_attribution: FlowAttribution = FlowAttribution.INTERVAL,
) -> List[TWRPoint]:
    """
    Build the TWR series for one account.

    Args:
        snapshots: Daily equity snapshots in any order.
        flows: Deposits and withdrawals for the account.
        flow_attribution: INTERVAL discounts each return by the flows since
            the previous snapshot day; SAME_DAY only by flows dated that day.

    Returns:
        One point per snapshot day, ascending. Empty when there are no snapshots.
    """
    try:
        ordered = ordered_snapshots(snapshots)
    except InsufficientDataError:
        return []

    events = list(flows)
    components = components_by_day(events)
    same_day = net_flows_by_day(events)
    cursor = IntervalFlowCursor(events)
    compounder = ReturnCompounder()

    points: List[TWRPoint] = []
    for i, snapshot in enumerate(ordered):
        deposits, withdrawals = components.get(snapshot.day, (ZERO, ZERO))
        interval = cursor.advance(snapshot.day)
        if i == 0:
            flow = ZERO
        elif flow_attribution == FlowAttribution.INTERVAL:
            flow = interval
        else:
            flow = same_day.get(snapshot.day, ZERO)

        daily_return = compounder.step(snapshot.day, snapshot.equity, flow)
        points.append(
            TWRPoint(
                day=snapshot.day,
                equity=snapshot.equity,
                pnl=snapshot.pnl,
                pnl_pct=snapshot.pnl_pct,
                deposits=deposits,
                withdrawals=withdrawals,
                net_cash_flow=deposits - withdrawals,
                daily_return=daily_return,
                cumulative_twr=compounder.cumulative_twr,
            )
        )

    if compounder.degenerate_days:
        logger.debug(
            "Zero return applied on degenerate intervals",
            degenerate_count=len(compounder.degenerate_days),
        )
    return points
