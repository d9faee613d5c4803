"""
Trailing-burn runway.

Runway = current cash / (average net burn of the last 3 complete months
+ monthly cost of hires that have already started).

  burn <= 0          -> runway is the sentinel (999 months), no zero date
  cash <= 0          -> runway 0, zero date = as-of date
  otherwise          -> cash / burn, zero date capped at 120 months out
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

from core.utils import resolve_as_of, round_currency
from data_prep.aggregate import aggregate_monthly_flows
from data_prep.burn import calculate_monthly_burn

from .cashflow import RUNWAY_SENTINEL

BURN_LOOKBACK_MONTHS = 3
MAX_ZERO_DATE_MONTHS = 120


@dataclass(frozen=True)
class HireCost:
    start_date: pd.Timestamp
    monthly_cost: float


@dataclass(frozen=True)
class RunwayScenario:
    name: str
    burn_multiplier: float = 1.0
    cash_adjustment: float = 0.0


@dataclass(frozen=True)
class RunwayMetrics:
    current_cash: float
    monthly_burn: float
    runway_months: float
    zero_date: Optional[pd.Timestamp]
    confidence: Optional[str] = None

    @property
    def is_infinite(self) -> bool:
        return self.runway_months >= RUNWAY_SENTINEL

    def to_dict(self) -> Dict:
        return {
            "current_cash": round_currency(self.current_cash, 2),
            "monthly_burn": round_currency(self.monthly_burn, 2),
            "runway_months": round_currency(self.runway_months, 1),
            "zero_date": self.zero_date.strftime("%Y-%m-%d") if self.zero_date is not None else None,
            "confidence": self.confidence,
        }


def _finite(value) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return v if np.isfinite(v) else 0.0


def burn_data_confidence(tx: pd.DataFrame, months: int, as_of: pd.Timestamp) -> str:
    """Confidence label from how many of the trailing complete months have activity."""
    start = (as_of.to_period("M") - months).start_time
    end = (as_of.to_period("M") - 1).end_time
    observed = len(aggregate_monthly_flows(tx, start, end, zero_fill=False))
    if observed >= months:
        return "high"
    if observed >= max(1, months - 1):
        return "medium"
    if observed > 0:
        return "low"
    return "insufficient"


def _runway(cash: float, burn: float, as_of: pd.Timestamp, confidence: Optional[str]) -> RunwayMetrics:
    if burn <= 0:
        return RunwayMetrics(cash, burn, RUNWAY_SENTINEL, None, confidence)
    if cash <= 0:
        return RunwayMetrics(cash, burn, 0.0, as_of, confidence)
    months = cash / burn
    zero_date = as_of + relativedelta(months=min(int(np.floor(months)), MAX_ZERO_DATE_MONTHS))
    return RunwayMetrics(cash, burn, min(months, RUNWAY_SENTINEL), pd.Timestamp(zero_date), confidence)


def calculate_runway(
    tx: pd.DataFrame,
    current_cash: float,
    planned_hires: Optional[Sequence[HireCost]] = None,
    *,
    as_of_date: Optional[pd.Timestamp] = None,
) -> RunwayMetrics:
    as_of = resolve_as_of(as_of_date)
    cash = _finite(current_cash)
    burn = calculate_monthly_burn(tx, BURN_LOOKBACK_MONTHS, as_of_date=as_of)
    started = sum(_finite(h.monthly_cost) for h in (planned_hires or []) if pd.Timestamp(h.start_date) <= as_of)
    confidence = burn_data_confidence(tx, BURN_LOOKBACK_MONTHS, as_of)
    return _runway(cash, burn + started, as_of, confidence)


def calculate_runway_with_scenarios(
    tx: pd.DataFrame,
    current_cash: float,
    planned_hires: Optional[Sequence[HireCost]] = None,
    scenarios: Optional[Sequence[RunwayScenario]] = None,
    *,
    as_of_date: Optional[pd.Timestamp] = None,
) -> Dict[str, RunwayMetrics]:
    """Baseline runway plus one entry per named scenario (burn multiplier, cash adjustment)."""
    as_of = resolve_as_of(as_of_date)
    baseline = calculate_runway(tx, current_cash, planned_hires, as_of_date=as_of)
    results: Dict[str, RunwayMetrics] = {"baseline": baseline}

    cash = _finite(current_cash)
    for scenario in scenarios or []:
        if not scenario.name:
            continue
        multiplier = scenario.burn_multiplier if np.isfinite(scenario.burn_multiplier) else 1.0
        burn = baseline.monthly_burn * multiplier
        results[scenario.name] = _runway(cash + _finite(scenario.cash_adjustment), burn, as_of, None)
    return results
