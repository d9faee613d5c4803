"""
Deterministic scenario cash-flow projection.

Monthly mechanics (month index i = 0..n-1), shared with the Monte Carlo runner:
  1. base revenue and base expenses compound by their growth factors
  2. planned hires / planned expenses are layered on top of base expenses
  3. a fundraise, if scheduled for month i, lands before that month's net flow
  4. ending cash = previous cash + fundraise + (revenue - total expenses)

Values stay at full precision; rounding to whole currency units happens only
in reporting (to_dataframe).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List, Optional, Tuple

import pandas as pd

from core.utils import month_starts, resolve_as_of, round_currency

from .assumptions import BaselineMetrics, ScenarioAssumptions

RUNWAY_SENTINEL = 999.0


@dataclass(frozen=True)
class MonthlyProjection:
    month: str
    revenue: float
    expenses: float
    net_cash_flow: float
    ending_cash: float
    runway_remaining: float


def step_month(
    i: int,
    revenue: float,
    base_expenses: float,
    cash: float,
    assumptions: ScenarioAssumptions,
    revenue_factor: float,
    expense_factor: float,
) -> Tuple[float, float, float, float, float]:
    """Advance one month. Returns (revenue, base_expenses, total_expenses, net_cash_flow, cash)."""
    revenue *= revenue_factor
    base_expenses *= expense_factor
    total_expenses = base_expenses + assumptions.overlay_expenses(i)
    cash += assumptions.fundraise_at(i)
    net = revenue - total_expenses
    cash += net
    return revenue, base_expenses, total_expenses, net, cash


def runway_remaining(cash: float, net_cash_flow: float) -> float:
    if net_cash_flow < 0:
        return max(0.0, cash / abs(net_cash_flow))
    return RUNWAY_SENTINEL


def month_labels(months: int, as_of_date: Optional[pd.Timestamp] = None) -> List[str]:
    """'YYYY-MM' labels for the months after the as-of month."""
    return [d.strftime("%Y-%m") for d in month_starts(resolve_as_of(as_of_date), months)]


def project_deterministic(
    assumptions: ScenarioAssumptions,
    baseline: BaselineMetrics,
    months: int,
    *,
    as_of_date: Optional[pd.Timestamp] = None,
) -> List[MonthlyProjection]:
    revenue_factor, expense_factor = baseline.growth_factors(assumptions)
    revenue, base_expenses = baseline.avg_revenue, baseline.avg_expenses
    cash = float(assumptions.starting_cash)

    out: List[MonthlyProjection] = []
    for i, label in enumerate(month_labels(months, as_of_date)):
        revenue, base_expenses, total_expenses, net, cash = step_month(
            i, revenue, base_expenses, cash, assumptions, revenue_factor, expense_factor
        )
        out.append(MonthlyProjection(
            month=label,
            revenue=revenue,
            expenses=total_expenses,
            net_cash_flow=net,
            ending_cash=cash,
            runway_remaining=runway_remaining(cash, net),
        ))
    return out


def projections_to_dataframe(projections: List[MonthlyProjection]) -> pd.DataFrame:
    """Report table; currency columns rounded half away from zero, runway to 0.1 month."""
    df = pd.DataFrame([asdict(p) for p in projections],
                      columns=["month", "revenue", "expenses", "net_cash_flow", "ending_cash", "runway_remaining"])
    if df.empty:
        return df
    for col in ("revenue", "expenses", "net_cash_flow", "ending_cash"):
        df[col] = round_currency(df[col].to_numpy())
    df["runway_remaining"] = round_currency(df["runway_remaining"].to_numpy(), 1)
    return df


def runway_from_projections(projections: List[MonthlyProjection]) -> int:
    """Index of the first month with ending cash <= 0, else the number of months."""
    for i, p in enumerate(projections):
        if p.ending_cash <= 0:
            return i
    return len(projections)
