from __future__ import annotations

from typing import Iterable, Optional

import numpy as np
import pandas as pd


def require_columns(df: pd.DataFrame, cols: Iterable[str]) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def resolve_as_of(as_of_date: Optional[pd.Timestamp]) -> pd.Timestamp:
    """Normalize an optional as-of date; None means today."""
    if as_of_date is None or pd.isna(as_of_date):
        return pd.Timestamp.today().normalize()
    return pd.Timestamp(as_of_date).normalize()


def month_starts(as_of_date: pd.Timestamp, n_months: int) -> pd.DatetimeIndex:
    """
    Generate month-start dates for projection periods after as_of_date.
    If as_of_date is mid-month, we still project starting next month-start.
    """
    as_of = pd.Timestamp(as_of_date)
    first = (as_of.to_period("M") + 1).to_timestamp(how="start")
    return pd.date_range(first, periods=n_months, freq="MS")


def month_key(value) -> str:
    """'YYYY-MM' label for a date, Timestamp or monthly Period."""
    if isinstance(value, pd.Period):
        return value.strftime("%Y-%m")
    return pd.Timestamp(value).strftime("%Y-%m")


def round_currency(x, decimals: int = 0):
    """Round half away from zero (vectorized). Used only when reporting."""
    m = 10 ** decimals
    arr = np.asarray(x, dtype=float)
    out = np.sign(arr) * (np.floor(np.abs(arr) * m + 0.5) / m)
    if out.ndim == 0:
        return float(out)
    return out


def format_currency(value: float) -> str:
    """Compact currency label: $1.2M, $3.4K, $950."""
    if abs(value) >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if abs(value) >= 1_000:
        return f"${value / 1_000:.1f}K"
    return f"${value:.0f}"


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0 or not np.isfinite(denominator):
        return default
    result = numerator / denominator
    return float(result) if np.isfinite(result) else default
