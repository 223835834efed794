"""
Time-weighted return calculation package.

Components:
- Ledger: Cash-flow pagination and netting
- Calculator: Per-account TWR recurrence
- Aggregator: Multi-account fan-out and aggregate TWR
- Today: Live-balance today point synthesis
- Rebase: Visible-window clamp and rebase
- Statistics: Benchmark correlation and volatility
- Service: High-level per-account and aggregate pipelines
"""

from .ledger import (
    CashFlowLedger,
    daily_components,
    interval_flow,
    net_flows_by_day,
    paginate_activities,
)
from .calculator import compute_twr
from .aggregator import (
    AggregateResult,
    MultiAccountAggregator,
    aggregate_series,
    aggregate_start_balance,
)
from .today import append_or_update_today
from .rebase import (
    check_rebase_consistency,
    clamp,
    clamp_and_rebase,
    rebase_additive,
    rebase_percentages,
    trim_leading_inactive,
)
from .statistics import (
    BenchmarkComparison,
    compare_to_benchmark,
    correlation,
    return_correlation,
    volatility,
)
from .service import PerformanceService

__all__ = [
    "CashFlowLedger",
    "daily_components",
    "interval_flow",
    "net_flows_by_day",
    "paginate_activities",
    "compute_twr",
    "AggregateResult",
    "MultiAccountAggregator",
    "aggregate_series",
    "aggregate_start_balance",
    "append_or_update_today",
    "check_rebase_consistency",
    "clamp",
    "clamp_and_rebase",
    "rebase_additive",
    "rebase_percentages",
    "trim_leading_inactive",
    "BenchmarkComparison",
    "compare_to_benchmark",
    "correlation",
    "return_correlation",
    "volatility",
    "PerformanceService",
]
