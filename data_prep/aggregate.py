"""
Aggregation of canonical transaction frames into the numeric series the
analytics core consumes.

Sign convention: amounts are signed (inflows positive, outflows negative).
Aggregates report outflows and spend as positive magnitudes.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

import pandas as pd

from core.schema import UNCATEGORIZED, UNKNOWN_VENDOR
from core.utils import require_columns

MONTHLY_FLOW_COLUMNS = ["month", "inflows", "outflows", "net_cash_flow"]

# Sunday-first weekday numbering used by day-of-week baselines.
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def filter_window(
    tx: pd.DataFrame,
    start: Optional[pd.Timestamp],
    end: Optional[pd.Timestamp],
) -> pd.DataFrame:
    require_columns(tx, ["date", "amount"])
    d = tx.copy()
    d["date"] = pd.to_datetime(d["date"], errors="coerce")
    d = d.dropna(subset=["date"])
    d["amount"] = pd.to_numeric(d["amount"], errors="coerce").fillna(0.0)
    if start is not None:
        d = d[d["date"] >= pd.Timestamp(start)]
    if end is not None:
        d = d[d["date"] <= pd.Timestamp(end)]
    return d


def aggregate_monthly_flows(
    tx: pd.DataFrame,
    start: Optional[pd.Timestamp] = None,
    end: Optional[pd.Timestamp] = None,
    *,
    zero_fill: bool = True,
) -> pd.DataFrame:
    """
    Monthly inflows, outflows and net cash flow.

    With zero_fill=True every calendar month between start and end (or the
    first and last transaction when not given) appears, months without
    activity contributing zeros. With zero_fill=False only observed months
    are returned.

    Returns columns: month (month-start Timestamp), inflows, outflows, net_cash_flow.
    """
    d = filter_window(tx, start, end)
    d["period"] = d["date"].dt.to_period("M")

    inflows = d.loc[d["amount"] > 0].groupby("period")["amount"].sum()
    outflows = d.loc[d["amount"] < 0].groupby("period")["amount"].sum().abs()

    if zero_fill:
        first = pd.Timestamp(start).to_period("M") if start is not None else (d["period"].min() if len(d) else None)
        last = pd.Timestamp(end).to_period("M") if end is not None else (d["period"].max() if len(d) else None)
        if first is None or last is None or first > last:
            return pd.DataFrame(columns=MONTHLY_FLOW_COLUMNS)
        periods = pd.period_range(first, last, freq="M")
    else:
        periods = pd.PeriodIndex(sorted(d["period"].unique()), freq="M")

    out = pd.DataFrame({
        "month": periods.to_timestamp(how="start"),
        "inflows": inflows.reindex(periods, fill_value=0.0).to_numpy(dtype=float),
        "outflows": outflows.reindex(periods, fill_value=0.0).to_numpy(dtype=float),
    })
    out["net_cash_flow"] = out["inflows"] - out["outflows"]
    return out.reset_index(drop=True)


def aggregate_daily_spend(
    tx: pd.DataFrame,
    start: Optional[pd.Timestamp] = None,
    end: Optional[pd.Timestamp] = None,
) -> pd.Series:
    """
    Daily expense totals (negative amounts only, as positive magnitudes).

    Days without spend are absent, not zero. Indexed by normalized date, ascending.
    """
    d = filter_window(tx, start, end)
    d = d.loc[d["amount"] < 0]
    if d.empty:
        return pd.Series(dtype=float, name="daily_spend")
    daily = d["amount"].abs().groupby(d["date"].dt.normalize()).sum().sort_index()
    daily.index.name = "date"
    return daily.rename("daily_spend").astype(float)


def monthly_spend_by_key(
    tx: pd.DataFrame,
    key: str,
    *,
    mapping: Optional[Mapping[str, str]] = None,
    start: Optional[pd.Timestamp] = None,
    end: Optional[pd.Timestamp] = None,
) -> Dict[str, pd.Series]:
    """
    Monthly expense totals per vendor or category.

    Missing identifiers fall into a catch-all group. When `mapping` is given,
    identifiers are first translated through it (e.g. category -> mapped account);
    unmapped identifiers keep their raw value.

    Returns {group: Series indexed by 'YYYY-MM', ascending}.
    """
    d = filter_window(tx, start, end)
    d = d.loc[d["amount"] < 0]
    if d.empty:
        return {}

    fallback = UNKNOWN_VENDOR if key == "vendor_id" else UNCATEGORIZED
    if key in d.columns:
        groups = d[key].map(lambda v: fallback if v is None or pd.isna(v) or v == "" else str(v))
    else:
        groups = pd.Series(fallback, index=d.index)
    if mapping:
        groups = groups.map(lambda v: mapping.get(v, v))

    frame = pd.DataFrame({
        "group": groups,
        "month": d["date"].dt.strftime("%Y-%m"),
        "spend": d["amount"].abs(),
    })
    totals = frame.groupby(["group", "month"])["spend"].sum()

    out: Dict[str, pd.Series] = {}
    for group, series in totals.groupby(level="group"):
        s = series.droplevel("group").sort_index().astype(float)
        s.name = str(group)
        out[str(group)] = s
    return out


def day_of_week(date: pd.Timestamp) -> int:
    """Sunday=0 .. Saturday=6."""
    return (pd.Timestamp(date).dayofweek + 1) % 7


def group_by_day_of_week(daily: pd.Series) -> Dict[int, List[float]]:
    """Bucket a date-indexed daily series by weekday (Sunday=0)."""
    out: Dict[int, List[float]] = {}
    for date, value in daily.items():
        out.setdefault(day_of_week(date), []).append(float(value))
    return out
