"""
Burn metrics over a transaction window.

Payroll classification order:
  1) explicit is_payroll flag
  2) category mapping (category_id -> mapped account name), when supplied
  3) vendor keyword heuristics
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Mapping, Optional

import pandas as pd

from core.utils import resolve_as_of

from .aggregate import filter_window

PAYROLL_KEYWORDS = (
    "payroll",
    "salary",
    "wage",
    "gusto",
    "adp",
    "paychex",
    "rippling",
    "justworks",
    "deel",
    "remote.com",
)


@dataclass(frozen=True)
class BurnMetrics:
    gross_burn: float
    net_burn: float
    revenue: float
    payroll: float
    non_payroll: float
    recurring: float
    one_time: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def _mentions_payroll(text) -> bool:
    if text is None or (isinstance(text, float) and pd.isna(text)):
        return False
    t = str(text).lower()
    return any(k in t for k in PAYROLL_KEYWORDS)


def classify_payroll(
    tx: pd.DataFrame,
    category_mapping: Optional[Mapping[str, str]] = None,
) -> pd.Series:
    """Boolean Series: True where a transaction is payroll."""
    flag = tx["is_payroll"] if "is_payroll" in tx.columns else pd.Series(pd.NA, index=tx.index)
    flag = flag.astype("boolean")

    inferred = pd.Series(False, index=tx.index)
    if category_mapping and "category_id" in tx.columns:
        mapped = tx["category_id"].map(lambda c: category_mapping.get(c) if c is not None else None)
        inferred |= mapped.map(_mentions_payroll).astype(bool)
    if "vendor_id" in tx.columns:
        inferred |= tx["vendor_id"].map(_mentions_payroll).astype(bool)

    return flag.fillna(inferred).astype(bool)


def compute_burn_metrics(
    tx: pd.DataFrame,
    start: Optional[pd.Timestamp] = None,
    end: Optional[pd.Timestamp] = None,
    *,
    category_mapping: Optional[Mapping[str, str]] = None,
) -> BurnMetrics:
    """Gross/net burn with payroll and recurring splits for [start, end]."""
    d = filter_window(tx, start, end)
    credit = d["amount"] > 0
    revenue = float(d.loc[credit, "amount"].sum())

    spend = d.loc[~credit]
    amounts = spend["amount"].abs()
    gross = float(amounts.sum())

    payroll_mask = classify_payroll(spend, category_mapping)
    payroll = float(amounts[payroll_mask].sum())

    if "is_recurring" in spend.columns:
        recurring_mask = spend["is_recurring"].astype("boolean").fillna(False).astype(bool)
    else:
        recurring_mask = pd.Series(False, index=spend.index)
    recurring = float(amounts[recurring_mask].sum())

    return BurnMetrics(
        gross_burn=gross,
        net_burn=gross - revenue,
        revenue=revenue,
        payroll=payroll,
        non_payroll=gross - payroll,
        recurring=recurring,
        one_time=gross - recurring,
    )


def _month_bounds(as_of: pd.Timestamp, months_ago: int):
    period = as_of.to_period("M") - months_ago
    return period.start_time, period.end_time


def calculate_monthly_burn(
    tx: pd.DataFrame,
    months: int = 3,
    *,
    as_of_date: Optional[pd.Timestamp] = None,
) -> float:
    """Average net burn over the last `months` complete calendar months."""
    if months < 1:
        raise ValueError("months must be at least 1.")
    as_of = resolve_as_of(as_of_date)
    start, _ = _month_bounds(as_of, months)
    _, end = _month_bounds(as_of, 1)
    return compute_burn_metrics(tx, start, end).net_burn / months


def calculate_burn_trend(
    tx: pd.DataFrame,
    months: int = 6,
    *,
    as_of_date: Optional[pd.Timestamp] = None,
) -> pd.DataFrame:
    """Net burn per calendar month, oldest first, ending with the as-of month."""
    as_of = resolve_as_of(as_of_date)
    rows = []
    for i in range(months - 1, -1, -1):
        start, end = _month_bounds(as_of, i)
        rows.append({"month": start, "burn": compute_burn_metrics(tx, start, end).net_burn})
    return pd.DataFrame(rows, columns=["month", "burn"])
