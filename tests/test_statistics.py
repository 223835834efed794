import math

import pytest

from twr_engine.services.performance.calculator import compute_twr
from twr_engine.services.performance.statistics import (
    compare_to_benchmark,
    correlation,
    return_correlation,
    volatility,
)
from .helpers import day, snapshots

RETURNS = {day(i): r for i, r in enumerate([0.01, -0.02, 0.015, 0.003, -0.007])}


def test_identical_returns_correlate_perfectly():
    assert return_correlation(RETURNS, RETURNS) == pytest.approx(1.0)


def test_negated_returns_correlate_negatively():
    negated = {d: -r for d, r in RETURNS.items()}
    assert return_correlation(RETURNS, negated) == pytest.approx(-1.0)


def test_too_few_common_days():
    short = {day(0): 0.01, day(1): 0.02}
    assert return_correlation(short, short) == 0.0
    assert return_correlation(RETURNS, {day(10): 0.1, day(11): 0.2, day(12): 0.3}) == 0.0


def test_constant_series_has_no_correlation():
    flat = {d: 0.0 for d in RETURNS}
    assert return_correlation(RETURNS, flat) == 0.0


@pytest.mark.filterwarnings("error::RuntimeWarning")
def test_constant_series_correlation_is_silent():
    flat = {d: 0.25 for d in RETURNS}
    assert return_correlation(flat, RETURNS) == 0.0

    series = compute_twr(snapshots(1000, 1010, 1030), [])
    comparison = compare_to_benchmark(series, {day(i): 100.0 for i in range(3)})
    assert comparison.correlation == 0.0


def test_level_correlation_uses_day_over_day_returns():
    levels = {day(i): v for i, v in enumerate([100.0, 101.0, 99.0, 102.0, 103.0])}
    scaled = {d: v * 3 for d, v in levels.items()}
    assert correlation(levels, scaled) == pytest.approx(1.0)


def test_volatility_is_annualized_population_std():
    returns = [0.01, -0.01, 0.01, -0.01]
    assert volatility(returns) == pytest.approx(0.01 * math.sqrt(252))
    assert volatility([0.05]) == 0.0


def test_compare_to_benchmark():
    series = compute_twr(snapshots(1000, 1010, 1030, 1020, 1050), [])
    benchmark = {day(i): v for i, v in enumerate([400.0, 402.0, 406.0, 404.0, 410.0])}

    comparison = compare_to_benchmark(series, benchmark)

    assert comparison.portfolio_return == pytest.approx(5.0)
    assert comparison.benchmark_return == pytest.approx(2.5)
    assert comparison.outperformance == pytest.approx(2.5)
    assert -1.0 <= comparison.correlation <= 1.0
    assert comparison.volatility_ratio > 0


def test_compare_with_flat_benchmark():
    series = compute_twr(snapshots(1000, 1010, 1030), [])
    flat = {day(i): 100.0 for i in range(3)}

    comparison = compare_to_benchmark(series, flat)

    assert comparison.benchmark_return == 0.0
    assert comparison.volatility_ratio == 1.0
    assert comparison.correlation == 0.0


def test_compare_empty_series():
    assert compare_to_benchmark([], {}).portfolio_return == 0.0
