from decimal import Decimal

import pytest

from twr_engine.core.enums import FlowAttribution
from twr_engine.core.errors import DegenerateIntervalError, InsufficientDataError
from twr_engine.core.references import EquitySnapshot
from twr_engine.services.performance.calculator import (
    IntervalFlowCursor,
    ReturnCompounder,
    compute_twr,
    ordered_snapshots,
    period_return,
)
from .helpers import day, deposit, snapshots, withdrawal


def test_period_return():
    assert period_return(Decimal("1000"), Decimal("1100"), Decimal("0")) == pytest.approx(0.1)
    assert period_return(Decimal("1000"), Decimal("1600"), Decimal("500")) == pytest.approx(0.1)


def test_period_return_rejects_non_positive_adjusted_equity():
    with pytest.raises(DegenerateIntervalError):
        period_return(Decimal("1000"), Decimal("500"), Decimal("700"))


def test_no_flows_compounds_equity_ratio():
    points = compute_twr(snapshots(100, 110, 99), [])

    assert [p.daily_return for p in points] == pytest.approx([0.0, 0.1, -0.1])
    assert points[-1].cumulative_twr == pytest.approx(0.99 - 1.0)
    assert points[0].cumulative_twr == 0.0


def test_deposit_does_not_count_as_return():
    points = compute_twr(snapshots(1000, 1600), [deposit(1, 500)])

    assert points[1].daily_return == pytest.approx(0.1)
    assert points[1].deposits == Decimal("500")
    assert points[1].net_cash_flow == Decimal("500")


def test_cumulative_is_product_of_daily_returns():
    equities = [1000, 1050, 1500, 1400, 1480, 900]
    flows = [deposit(2, 400), withdrawal(5, 600)]
    points = compute_twr(snapshots(*equities), flows)

    product = 1.0
    for point in points:
        product *= 1.0 + point.daily_return
        assert point.cumulative_twr == pytest.approx(product - 1.0)


def test_degenerate_interval_gives_zero_return():
    points = compute_twr(snapshots(1000, 500), [deposit(1, 700)])

    assert points[1].daily_return == 0.0
    assert points[1].cumulative_twr == 0.0


def test_restart_after_zero_equity():
    points = compute_twr(snapshots(1000, 0, 0, 500, 550), [])

    # The drop to zero is a non-positive adjusted equity, so its return is zero
    assert points[1].daily_return == 0.0
    assert points[2].daily_return == 0.0
    assert points[3].daily_return == 0.0
    assert points[3].cumulative_twr == 0.0
    assert points[4].daily_return == pytest.approx(0.1)
    assert points[4].cumulative_twr == pytest.approx(0.1)


def test_leading_zero_equity_waits_for_funding():
    points = compute_twr(snapshots(0, 0, 200, 220), [deposit(2, 200)])

    assert [p.cumulative_twr for p in points[:3]] == [0.0, 0.0, 0.0]
    assert points[3].cumulative_twr == pytest.approx(0.1)


def test_empty_snapshots_give_empty_series():
    assert compute_twr([], [deposit(0, 100)]) == []
    with pytest.raises(InsufficientDataError):
        ordered_snapshots([])


def test_duplicate_days_keep_last_snapshot():
    data = [
        EquitySnapshot(day=day(1), equity=Decimal("200")),
        EquitySnapshot(day=day(0), equity=Decimal("100")),
        EquitySnapshot(day=day(1), equity=Decimal("110")),
    ]
    ordered = ordered_snapshots(data)
    assert [s.equity for s in ordered] == [Decimal("100"), Decimal("110")]


def test_interval_attribution_covers_gaps():
    # Snapshots on day 0 and day 3; the deposit lands on day 2 with no snapshot
    data = snapshots(1000) + snapshots(1650, start=3)
    flows = [deposit(2, 500)]

    interval = compute_twr(data, flows)
    same_day = compute_twr(data, flows, flow_attribution=FlowAttribution.SAME_DAY)

    assert interval[1].daily_return == pytest.approx(0.15)
    assert same_day[1].daily_return == pytest.approx(0.65)


def test_flows_before_first_snapshot_do_not_leak():
    points = compute_twr(snapshots(1000, 1100, start=5), [deposit(1, 1000)])
    assert points[1].daily_return == pytest.approx(0.1)


def test_interval_cursor():
    cursor = IntervalFlowCursor([deposit(3, 10), deposit(1, 5), withdrawal(3, 2)])
    assert cursor.advance(day(0)) == Decimal("0")
    assert cursor.advance(day(2)) == Decimal("5")
    assert cursor.advance(day(3)) == Decimal("8")
    assert cursor.advance(day(9)) == Decimal("0")


def test_compounder_records_degenerate_days():
    compounder = ReturnCompounder()
    compounder.step(day(0), Decimal("100"), Decimal("0"))
    compounder.step(day(1), Decimal("10"), Decimal("50"))
    assert compounder.degenerate_days == [day(1)]
    assert compounder.cumulative_twr == 0.0
