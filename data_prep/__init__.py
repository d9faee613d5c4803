"""
Data preparation — loading ledger exports, canonicalization, validation,
aggregation into monthly/daily series, and burn metrics.
"""

from .loader import load_transactions
from .ledger import InMemoryLedger, canonicalize_columns, prepare_transactions
from .validators import ValidationResult, validate_transactions
from .aggregate import (
    DAY_NAMES,
    aggregate_monthly_flows,
    aggregate_daily_spend,
    monthly_spend_by_key,
    day_of_week,
    group_by_day_of_week,
)
from .burn import (
    BurnMetrics,
    PAYROLL_KEYWORDS,
    classify_payroll,
    compute_burn_metrics,
    calculate_monthly_burn,
    calculate_burn_trend,
)

__all__ = [
    "load_transactions",
    "InMemoryLedger",
    "canonicalize_columns",
    "prepare_transactions",
    "ValidationResult",
    "validate_transactions",
    "DAY_NAMES",
    "aggregate_monthly_flows",
    "aggregate_daily_spend",
    "monthly_spend_by_key",
    "day_of_week",
    "group_by_day_of_week",
    "BurnMetrics",
    "PAYROLL_KEYWORDS",
    "classify_payroll",
    "compute_burn_metrics",
    "calculate_monthly_burn",
    "calculate_burn_trend",
]
