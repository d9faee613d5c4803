"""
Core package — configuration, ledger schema, collaborator ports, and shared utilities.
No business logic lives here.
"""

from .schema import TRANSACTION_COLUMNS, REQUIRED_TRANSACTION_COLUMNS
from .config import AnomalyConfig, ForecastConfig, ScenarioConfig
from .ports import AnomalyStore, ModelStore, ScenarioRunStore, TransactionSource
from .utils import (
    require_columns,
    resolve_as_of,
    month_starts,
    month_key,
    round_currency,
    format_currency,
    safe_divide,
)

__all__ = [
    "TRANSACTION_COLUMNS",
    "REQUIRED_TRANSACTION_COLUMNS",
    "AnomalyConfig",
    "ForecastConfig",
    "ScenarioConfig",
    "AnomalyStore",
    "ModelStore",
    "ScenarioRunStore",
    "TransactionSource",
    "require_columns",
    "resolve_as_of",
    "month_starts",
    "month_key",
    "round_currency",
    "format_currency",
    "safe_divide",
]
