"""
Cross-series statistics between a portfolio TWR series and a benchmark.

Series are aligned on the calendar days they share; days present in only
one of them are ignored.
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from twr_engine.core.config import engine_constants
from twr_engine.core.references import TWRPoint


@dataclass(frozen=True)
class BenchmarkComparison:
    """Portfolio performance relative to a benchmark, in percent."""
    portfolio_return: float
    benchmark_return: float
    outperformance: float
    correlation: float
    volatility_ratio: float


def series_levels(points: Iterable[TWRPoint]) -> Dict[date, float]:
    """Map a TWR series to its cumulative growth factor per day."""
    return {point.day: point.cumulative_factor for point in points}


def _aligned(left: Mapping[date, float], right: Mapping[date, float]) -> pd.DataFrame:
    frame = pd.DataFrame({
        "left": pd.Series(dict(left), dtype="float64"),
        "right": pd.Series(dict(right), dtype="float64"),
    })
    return frame.dropna().sort_index()


def _pearson(frame: pd.DataFrame) -> float:
    if len(frame) < 2:
        return engine_constants.NEUTRAL_CORRELATION
    if (frame.nunique() < 2).any():
        return engine_constants.NEUTRAL_CORRELATION
    value = frame["left"].corr(frame["right"])
    if value is None or not math.isfinite(value):
        return engine_constants.NEUTRAL_CORRELATION
    return float(value)


def return_correlation(
    portfolio_returns: Mapping[date, float],
    benchmark_returns: Mapping[date, float],
) -> float:
    """
    Pearson correlation of two daily return series on their common days.

    Returns 0.0 with fewer than three common days or when either side has
    no variance.
    """
    frame = _aligned(portfolio_returns, benchmark_returns)
    if len(frame) < engine_constants.MIN_CORRELATION_DAYS:
        return engine_constants.NEUTRAL_CORRELATION
    return _pearson(frame)


def correlation(
    portfolio_levels: Mapping[date, float],
    benchmark_levels: Mapping[date, float],
) -> float:
    """
    Pearson correlation of day-over-day returns of two level series.

    Returns are taken between consecutive common days, skipping steps whose
    previous level is zero. Returns 0.0 with fewer than three common days.
    """
    frame = _aligned(portfolio_levels, benchmark_levels)
    if len(frame) < engine_constants.MIN_CORRELATION_DAYS:
        return engine_constants.NEUTRAL_CORRELATION
    previous = frame.shift(1).replace(0.0, np.nan)
    returns = (frame / previous - 1.0).dropna()
    return _pearson(returns)


def volatility(returns: Sequence[float]) -> float:
    """Annualized volatility: population std of daily returns times sqrt(252)."""
    values = pd.Series(list(returns), dtype="float64").dropna()
    if len(values) < engine_constants.MIN_VOLATILITY_RETURNS:
        return 0.0
    return float(values.std(ddof=0) * math.sqrt(engine_constants.TRADING_DAYS_PER_YEAR))


def level_returns(levels: Mapping[date, float]) -> pd.Series:
    """Day-over-day returns of a level series, ordered by day."""
    series = pd.Series(dict(levels), dtype="float64").sort_index()
    return (series / series.shift(1).replace(0.0, np.nan) - 1.0).dropna()


def compare_to_benchmark(
    series: Sequence[TWRPoint],
    benchmark_levels: Mapping[date, float],
) -> BenchmarkComparison:
    """
    Summarize a portfolio series against benchmark price levels.

    The benchmark is restricted to the portfolio's first-to-last day.
    The volatility ratio is 1.0 when the benchmark has no volatility.
    """
    if not series:
        return BenchmarkComparison(0.0, 0.0, 0.0, 0.0, engine_constants.NEUTRAL_VOLATILITY_RATIO)

    first, last = series[0], series[-1]
    portfolio_return = (
        (last.cumulative_factor / first.cumulative_factor - 1.0) * 100.0
        if first.cumulative_factor
        else 0.0
    )

    window = {
        day: level
        for day, level in benchmark_levels.items()
        if first.day <= day <= last.day
    }
    ordered_days = sorted(window)
    benchmark_return = 0.0
    if len(ordered_days) >= 2 and window[ordered_days[0]]:
        benchmark_return = (window[ordered_days[-1]] / window[ordered_days[0]] - 1.0) * 100.0

    portfolio_vol = volatility([point.daily_return for point in series[1:]])
    benchmark_vol = volatility(level_returns(window).tolist())
    volatility_ratio = (
        portfolio_vol / benchmark_vol
        if benchmark_vol > 0
        else engine_constants.NEUTRAL_VOLATILITY_RATIO
    )

    return BenchmarkComparison(
        portfolio_return=portfolio_return,
        benchmark_return=benchmark_return,
        outperformance=portfolio_return - benchmark_return,
        correlation=correlation(series_levels(series), window),
        volatility_ratio=volatility_ratio,
    )
