"""
Scenario key metrics from a deterministic projection and its Monte Carlo companion.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

import numpy as np

from core.utils import round_currency

from .aggregator import MonteCarloResult

if TYPE_CHECKING:
    from engine.cashflow import MonthlyProjection


@dataclass(frozen=True)
class KeyMetrics:
    projected_runway: float          # Monte Carlo expected runway, months
    projected_burn_rate: float       # mean |net| over burning months
    break_even_month: Optional[str]  # first month with net >= 0
    probability_of_success: float    # survival at the horizon

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["projected_burn_rate"] = round_currency(self.projected_burn_rate)
        return d


def average_burn_rate(projections: List[MonthlyProjection]) -> float:
    burns = np.array([abs(p.net_cash_flow) for p in projections if p.net_cash_flow < 0], dtype=float)
    return float(burns.mean()) if burns.size else 0.0


def break_even_month(projections: List[MonthlyProjection]) -> Optional[str]:
    for p in projections:
        if p.net_cash_flow >= 0:
            return p.month
    return None


def compute_key_metrics(projections: List[MonthlyProjection], monte_carlo: MonteCarloResult) -> KeyMetrics:
    return KeyMetrics(
        projected_runway=monte_carlo.expected_runway,
        projected_burn_rate=average_burn_rate(projections),
        break_even_month=break_even_month(projections),
        probability_of_success=monte_carlo.final_survival,
    )
