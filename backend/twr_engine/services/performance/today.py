"""
Today point synthesis from a live balance.

The recorded history ends at the last closed trading day. While the
current day is open, a provisional point is built from the live equity
and the cash flows booked since the last recorded day.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

import pytz

from twr_engine.core.config import settings
from twr_engine.core.enums import TodayWritePolicy
from twr_engine.core.logging.logger import get_logger
from twr_engine.core.references import CashFlowEvent, DateRange, TWRPoint
from .calculator import ReturnCompounder
from .ledger import daily_components, interval_flow

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def exchange_today(tz: Optional[pytz.BaseTzInfo] = None) -> date:
    """Current calendar day in the exchange timezone."""
    return datetime.now(tz or settings.timezone).date()


def exceeds_thresholds(
    previous: TWRPoint,
    candidate: TWRPoint,
    equity_threshold: Decimal,
    twr_threshold: float,
) -> bool:
    """Whether ``candidate`` differs enough from ``previous`` to replace it."""
    return (
        abs(candidate.equity - previous.equity) > equity_threshold
        or abs(candidate.cumulative_twr - previous.cumulative_twr) > twr_threshold
    )


def synthesize_today_point(
    base: TWRPoint,
    live_equity: Decimal,
    todays_flows: Iterable[CashFlowEvent],
    today: date,
) -> TWRPoint:
    """
    Build the today point on top of ``base``, the last recorded point.

    The return is discounted by flows in (base.day, today]; display
    fields show only flows dated today.
    """
    events = list(todays_flows)
    flow = interval_flow(events, base.day, today)
    deposits, withdrawals = daily_components(events, today)

    compounder = ReturnCompounder(
        cumulative=base.cumulative_factor,
        started=base.equity > 0,
        prev_equity=base.equity,
    )
    daily_return = compounder.step(today, live_equity, flow)

    pnl = live_equity - base.equity
    pnl_pct = pnl / base.equity * HUNDRED if base.equity else ZERO
    return TWRPoint(
        day=today,
        equity=live_equity,
        pnl=pnl,
        pnl_pct=pnl_pct,
        deposits=deposits,
        withdrawals=withdrawals,
        net_cash_flow=deposits - withdrawals,
        daily_return=daily_return,
        cumulative_twr=compounder.cumulative_twr,
        synthesized=True,
    )


def append_or_update_today(
    series: Sequence[TWRPoint],
    live_equity: Decimal,
    todays_flows: Iterable[CashFlowEvent],
    today: Optional[date] = None,
    date_range: Optional[DateRange] = None,
    policy: TodayWritePolicy = TodayWritePolicy.ALWAYS,
    equity_threshold: Optional[Decimal] = None,
    twr_threshold: Optional[float] = None,
) -> List[TWRPoint]:
    """
    Return ``series`` with a synthesized point for today appended or replaced.

    The series is returned unchanged when today is outside ``date_range``,
    the series is empty, or its last point is a recorded snapshot for today
    (or later). With ``TodayWritePolicy.THRESHOLD`` an existing synthesized
    point is only replaced when equity or cumulative TWR moved by more than
    the configured thresholds.
    """
    today = today or exchange_today()
    points = list(series)
    if not points:
        return points
    if date_range is not None and not date_range.contains(today):
        return points

    last = points[-1]
    if last.day > today or (last.day == today and not last.synthesized):
        return points

    history = points[:-1] if last.day == today else points
    if not history:
        return points

    candidate = synthesize_today_point(history[-1], live_equity, todays_flows, today)

    if last.day != today:
        return history + [candidate]

    if policy == TodayWritePolicy.THRESHOLD:
        if equity_threshold is None:
            equity_threshold = settings.today.EQUITY_THRESHOLD
        if twr_threshold is None:
            twr_threshold = settings.today.TWR_THRESHOLD
        if not exceeds_thresholds(last, candidate, equity_threshold, twr_threshold):
            logger.debug(
                "Kept previous today point; change below thresholds",
                day=today,
                equity=str(candidate.equity),
            )
            return points

    return history + [candidate]
