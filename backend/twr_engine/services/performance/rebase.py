"""
Visible-window clamping and rebasing of TWR series.

The canonical rebase compounds each point's daily return forward from the
first visible point, which reads 0%. When only cumulative percentages are
available, per-step returns are reconstructed from consecutive percentages
and fed through the same compounding, so both paths share one primitive.
"""

import math
from datetime import date, datetime
from typing import List, Optional, Sequence, Union

from twr_engine.core.config import settings
from twr_engine.core.errors.base import RebaseMismatchError
from twr_engine.core.references import DateRange, TWRPoint


def _as_day(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(settings.timezone)
        return value.date()
    return value


def clamp(series: Sequence[TWRPoint], visible_range: DateRange) -> List[TWRPoint]:
    """Keep points with ``visible_range.start <= day <= visible_range.end``."""
    start = _as_day(visible_range.start)
    end = _as_day(visible_range.end)
    return [point for point in series if start <= point.day <= end]


def compound_returns(returns: Sequence[float]) -> List[float]:
    """
    Cumulative returns (proportion minus one) from per-step returns.

    The first element is the baseline and always reads 0.
    """
    cumulative = 1.0
    result: List[float] = []
    for i, step in enumerate(returns):
        if i > 0:
            cumulative *= 1.0 + step
        result.append(cumulative - 1.0)
    return result


def rebase_additive(series: Sequence[TWRPoint]) -> List[TWRPoint]:
    """Re-baseline ``series`` to 0% at its first point using its daily returns."""
    rebased = compound_returns([point.daily_return for point in series])
    return [
        point.model_copy(update={"cumulative_twr": value})
        for point, value in zip(series, rebased)
    ]


def returns_from_cumulative(percentages: Sequence[float]) -> List[float]:
    """
    Per-step returns implied by consecutive cumulative percentages.

    The first element is 0. A step starting from -100% yields 0.
    """
    returns: List[float] = []
    previous: Optional[float] = None
    for pct in percentages:
        factor = 1.0 + pct / 100.0
        if previous is None or previous == 0:
            returns.append(0.0)
        else:
            returns.append(factor / previous - 1.0)
        previous = factor
    return returns


def rebase_percentages(percentages: Sequence[float]) -> List[float]:
    """
    Re-baseline cumulative percentages to 0% at the first value.

    Equivalent to ``((1 + v_i/100) / (1 + v_0/100) - 1) * 100`` for series
    without a -100% point.
    """
    return [value * 100.0 for value in compound_returns(returns_from_cumulative(percentages))]


def clamp_and_rebase(series: Sequence[TWRPoint], visible_range: DateRange) -> List[TWRPoint]:
    """Restrict ``series`` to ``visible_range`` and rebase it to start at 0%."""
    return rebase_additive(clamp(series, visible_range))


def check_rebase_consistency(
    series: Sequence[TWRPoint],
    visible_range: Optional[DateRange] = None,
    tolerance: Optional[float] = None,
) -> List[float]:
    """
    Compare the daily-return rebase with the percentage-only rebase.

    Both must agree for a series whose cumulative values follow its daily
    returns (no trading restart inside the window).

    Returns:
        The rebased percentages.

    Raises:
        RebaseMismatchError: If any point differs beyond ``tolerance``.
    """
    tolerance = tolerance if tolerance is not None else settings.rebase.TOLERANCE
    window = clamp(series, visible_range) if visible_range else list(series)

    additive = [point.cumulative_pct for point in rebase_additive(window)]
    proportional = rebase_percentages([point.cumulative_pct for point in window])

    for point, a, p in zip(window, additive, proportional):
        if not math.isclose(1.0 + a / 100.0, 1.0 + p / 100.0, rel_tol=tolerance, abs_tol=tolerance):
            raise RebaseMismatchError(
                "Rebase strategies disagree",
                context={"day": point.day.isoformat(), "additive": a, "proportional": p},
            )
    return additive


def trim_leading_inactive(
    series: Sequence[TWRPoint], start: Optional[date] = None
) -> List[TWRPoint]:
    """
    Drop leading points before trading activity begins.

    Activity begins at the first point (on or after ``start``) with positive
    equity whose next point has a different equity. Falls back to the first
    positive-equity point; returns the series unchanged if there is none.
    """
    points = list(series)

    def eligible(point: TWRPoint) -> bool:
        return point.equity > 0 and (start is None or point.day >= start)

    for i in range(len(points) - 1):
        if eligible(points[i]) and points[i + 1].equity != points[i].equity:
            return points[i:]
    for i, point in enumerate(points):
        if eligible(point):
            return points[i:]
    return points
