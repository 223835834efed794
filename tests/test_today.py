from decimal import Decimal

import pytest

from twr_engine.core.enums import TodayWritePolicy
from twr_engine.core.references import TWRPoint
from twr_engine.services.performance.calculator import compute_twr
from twr_engine.services.performance.today import (
    append_or_update_today,
    exceeds_thresholds,
    synthesize_today_point,
)
from .helpers import day, deposit, full_range, snapshots

TODAY = day(3)


def _history():
    return compute_twr(snapshots(1000, 1100, 1210), [])


def test_appends_point_after_last_recorded_day():
    series = append_or_update_today(_history(), Decimal("1331"), [], today=TODAY)

    assert len(series) == 4
    point = series[-1]
    assert point.day == TODAY
    assert point.synthesized
    assert point.daily_return == pytest.approx(0.1)
    assert point.cumulative_twr == pytest.approx(0.331)
    assert point.pnl == Decimal("121")


def test_flows_since_last_day_are_discounted():
    history = compute_twr(snapshots(1000, 1100), [])
    flows = [deposit(2, 300), deposit(3, 200)]

    point = synthesize_today_point(history[-1], Decimal("1760"), flows, TODAY)

    assert point.daily_return == pytest.approx((1760 - 500) / 1100 - 1)
    # Display components only cover today
    assert point.deposits == Decimal("200")


def test_recorded_today_point_is_left_alone():
    history = compute_twr(snapshots(1000, 1100, 1210, 1250), [])
    assert append_or_update_today(history, Decimal("9999"), [], today=TODAY) == history


def test_today_outside_range_is_ignored():
    series = append_or_update_today(
        _history(), Decimal("1331"), [], today=TODAY, date_range=full_range(2)
    )
    assert len(series) == 3


def test_empty_series_unchanged():
    assert append_or_update_today([], Decimal("100"), [], today=TODAY) == []


def test_always_policy_replaces_synthesized_point():
    first = append_or_update_today(_history(), Decimal("1331"), [], today=TODAY)
    second = append_or_update_today(first, Decimal("1331.001"), [], today=TODAY)

    assert len(second) == 4
    assert second[-1].equity == Decimal("1331.001")


def test_threshold_policy_keeps_point_on_small_moves():
    first = append_or_update_today(_history(), Decimal("1331"), [], today=TODAY)

    unchanged = append_or_update_today(
        first, Decimal("1331.005"), [], today=TODAY, policy=TodayWritePolicy.THRESHOLD
    )
    assert unchanged[-1].equity == Decimal("1331")

    moved = append_or_update_today(
        first, Decimal("1340"), [], today=TODAY, policy=TodayWritePolicy.THRESHOLD
    )
    assert moved[-1].equity == Decimal("1340")


def test_exceeds_thresholds():
    a = TWRPoint(day=TODAY, equity=Decimal("100"), cumulative_twr=0.1)
    b = TWRPoint(day=TODAY, equity=Decimal("100.005"), cumulative_twr=0.1005)
    c = TWRPoint(day=TODAY, equity=Decimal("100"), cumulative_twr=0.102)

    assert not exceeds_thresholds(a, b, Decimal("0.01"), 0.001)
    assert exceeds_thresholds(a, c, Decimal("0.01"), 0.001)
