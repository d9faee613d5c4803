"""
Scenario forecast engine.

    history (<= 6 observed months of revenue / expenses)
        -> BaselineMetrics (average levels, trailing-vs-leading growth)
        -> deterministic projection + Monte Carlo bands
        -> key metrics (expected runway, burn, break-even, probability of success)

Optionally cross-checks the scenario's net cash flow against a trained
CashFlowForecastModel for the same organization.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

from core.config import ScenarioConfig
from core.ports import ScenarioRunStore, TransactionSource
from core.utils import resolve_as_of, round_currency, safe_divide
from data_prep.aggregate import aggregate_monthly_flows
from models.cashflow_model import CashFlowForecastModel
from pm.aggregator import MonteCarloResult
from pm.metrics import KeyMetrics, compute_key_metrics
from statskit import mean, trailing_mean

from .assumptions import BaselineMetrics, ScenarioAssumptions
from .cashflow import (
    MonthlyProjection,
    project_deterministic,
    projections_to_dataframe,
    runway_from_projections,
)
from .runner import run_monte_carlo_simulation

logger = logging.getLogger(__name__)

GROWTH_WINDOW_MONTHS = 3

# (label, assumption field, delta); starting cash uses 10% of its value
SENSITIVITY_DRIVERS = (
    ("Revenue Growth", "monthly_revenue_growth", 0.01),
    ("Expense Growth", "monthly_expense_growth", 0.01),
    ("Revenue Volatility", "revenue_volatility", 0.05),
    ("Expense Volatility", "expense_volatility", 0.05),
    ("Starting Cash", "starting_cash", None),
)
STARTING_CASH_DELTA = 0.1


@dataclass(frozen=True)
class SensitivityResult:
    driver: str
    impact: float       # change in runway, months
    sensitivity: float  # impact per unit of driver change

    def to_dict(self) -> Dict[str, Any]:
        return {
            "driver": self.driver,
            "impact": round_currency(self.impact, 1),
            "sensitivity": round_currency(self.sensitivity, 2),
        }


@dataclass(frozen=True)
class ModelCrossCheck:
    """Scenario net cash flow vs the trained model's forecast, month by month."""
    scenario_net_cash_flow: List[float]
    model_net_cash_flow: List[float]
    mean_absolute_gap: float
    model_confidence: float


@dataclass
class ScenarioForecastResult:
    projected_values: List[MonthlyProjection]
    monte_carlo: MonteCarloResult
    key_metrics: KeyMetrics
    baseline: BaselineMetrics
    model_cross_check: Optional[ModelCrossCheck] = None

    @property
    def confidence_intervals(self) -> pd.DataFrame:
        return self.monte_carlo.percentiles

    def to_dataframe(self) -> pd.DataFrame:
        """Deterministic projection alongside the Monte Carlo bands, rounded for reporting."""
        det = projections_to_dataframe(self.projected_values)
        bands = self.monte_carlo.to_dataframe()
        return det.merge(bands, on="month", how="left")

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "projected_values": projections_to_dataframe(self.projected_values).to_dict(orient="records"),
            "confidence_intervals": self.monte_carlo.to_dataframe().to_dict(orient="records"),
            "key_metrics": self.key_metrics.to_dict(),
            "baseline": asdict(self.baseline),
        }
        if self.model_cross_check is not None:
            out["model_cross_check"] = asdict(self.model_cross_check)
        return out


class ScenarioForecastEngine:
    """
    Usage:
        engine = ScenarioForecastEngine("org-1", ledger, config=ScenarioConfig(seed=7))
        result = engine.generate_forecast(ScenarioAssumptions(starting_cash=1_000_000))
        print(result.to_dataframe())
    """

    def __init__(
        self,
        organization_id: str,
        source: Optional[TransactionSource] = None,
        *,
        store: Optional[ScenarioRunStore] = None,
        config: Optional[ScenarioConfig] = None,
        forecast_model: Optional[CashFlowForecastModel] = None,
    ):
        self.organization_id = organization_id
        self.source = source
        self.store = store
        self.config = config or ScenarioConfig()
        self.forecast_model = forecast_model

    @property
    def simulation_count(self) -> int:
        return self.config.simulation_count

    # ------------------------------------------------------------------
    # History and baseline
    # ------------------------------------------------------------------
    def get_historical_data(self, months: Optional[int] = None) -> pd.DataFrame:
        """Observed months (no zero fill) of revenue and expenses in the lookback window."""
        months = months or self.config.history_months
        empty = pd.DataFrame(columns=["month", "revenue", "expenses"])
        if self.source is None:
            return empty

        as_of = resolve_as_of(self.config.as_of_date)
        start = pd.Timestamp(as_of.to_pydatetime() - relativedelta(months=months))
        end = as_of + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
        try:
            tx = self.source.get_transactions(self.organization_id, start=start, end=end)
        except Exception:
            logger.exception("Could not read transactions for %s", self.organization_id)
            return empty

        flows = aggregate_monthly_flows(tx, start, end, zero_fill=False)
        return flows.rename(columns={"inflows": "revenue", "outflows": "expenses"}).loc[:, ["month", "revenue", "expenses"]]

    @staticmethod
    def compute_baseline_metrics(history: pd.DataFrame) -> BaselineMetrics:
        """
        Average monthly revenue/expenses plus growth: the trailing 3-month mean
        vs the leading 3-month mean, annualized over the history span, then
        expressed per month.
        """
        n = len(history)
        if n == 0:
            return BaselineMetrics()
        revenue = history["revenue"].to_numpy(dtype=float)
        expenses = history["expenses"].to_numpy(dtype=float)

        def _growth(values: np.ndarray) -> float:
            if values.size < 2:
                return 0.0
            older = mean(values[:GROWTH_WINDOW_MONTHS])
            recent = trailing_mean(values, GROWTH_WINDOW_MONTHS)
            if older <= 0:
                return 0.0
            annual = (recent - older) / older / (values.size / 12.0)
            return annual / 12.0

        return BaselineMetrics(
            avg_revenue=mean(revenue),
            avg_expenses=mean(expenses),
            revenue_growth=_growth(revenue),
            expense_growth=_growth(expenses),
            months=n,
        )

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------
    def generate_deterministic_forecast(
        self,
        assumptions: ScenarioAssumptions,
        baseline: BaselineMetrics,
        months: Optional[int] = None,
    ) -> List[MonthlyProjection]:
        return project_deterministic(
            assumptions, baseline, months or self.config.forecast_months, as_of_date=self.config.as_of_date
        )

    def run_monte_carlo_simulation(
        self,
        assumptions: ScenarioAssumptions,
        baseline: BaselineMetrics,
        months: Optional[int] = None,
        *,
        simulation_count: Optional[int] = None,
    ) -> MonteCarloResult:
        return run_monte_carlo_simulation(
            assumptions,
            baseline,
            months or self.config.forecast_months,
            simulation_count=simulation_count or self.config.simulation_count,
            seed=self.config.seed,
            max_workers=self.config.max_workers,
            as_of_date=self.config.as_of_date,
        )

    def generate_forecast(
        self,
        assumptions: ScenarioAssumptions,
        forecast_months: Optional[int] = None,
    ) -> ScenarioForecastResult:
        months = forecast_months or self.config.forecast_months
        baseline = self.compute_baseline_metrics(self.get_historical_data())
        if baseline.months == 0:
            logger.warning("No revenue/expense history for %s; projecting from zero levels", self.organization_id)

        projections = self.generate_deterministic_forecast(assumptions, baseline, months)
        monte_carlo = self.run_monte_carlo_simulation(assumptions, baseline, months)
        result = ScenarioForecastResult(
            projected_values=projections,
            monte_carlo=monte_carlo,
            key_metrics=compute_key_metrics(projections, monte_carlo),
            baseline=baseline,
            model_cross_check=self._cross_check(projections),
        )
        logger.info(
            "Scenario forecast for %s: %d months, %d simulations, expected runway %.1f",
            self.organization_id, months, monte_carlo.n_simulations, monte_carlo.expected_runway,
        )
        return result

    def _cross_check(self, projections: List[MonthlyProjection]) -> Optional[ModelCrossCheck]:
        if self.forecast_model is None or not projections:
            return None
        model_result = self.forecast_model.forecast(len(projections))
        if model_result is None:
            return None
        scenario_net = [p.net_cash_flow for p in projections]
        model_net = [f.net_cash_flow for f in model_result.forecasts]
        gaps = np.abs(np.asarray(scenario_net) - np.asarray(model_net))
        return ModelCrossCheck(
            scenario_net_cash_flow=scenario_net,
            model_net_cash_flow=model_net,
            mean_absolute_gap=float(gaps.mean()),
            model_confidence=model_result.model_confidence,
        )

    # ------------------------------------------------------------------
    # Sensitivity
    # ------------------------------------------------------------------
    def run_sensitivity_analysis(
        self,
        assumptions: ScenarioAssumptions,
        baseline: BaselineMetrics,
        months: Optional[int] = None,
    ) -> List[SensitivityResult]:
        """
        Perturb each driver by its delta, rerun the deterministic projection and
        report the runway change; sorted by descending |impact|.
        """
        months = months or self.config.forecast_months
        base_runway = runway_from_projections(self.generate_deterministic_forecast(assumptions, baseline, months))
        current = {
            "monthly_revenue_growth": baseline.growth_factors(assumptions)[0] - 1.0,
            "monthly_expense_growth": baseline.growth_factors(assumptions)[1] - 1.0,
            "revenue_volatility": assumptions.effective_revenue_volatility,
            "expense_volatility": assumptions.effective_expense_volatility,
            "starting_cash": float(assumptions.starting_cash),
        }

        results: List[SensitivityResult] = []
        for label, key, delta in SENSITIVITY_DRIVERS:
            if delta is None:
                delta = float(assumptions.starting_cash) * STARTING_CASH_DELTA
            modified = assumptions.model_copy(update={key: current[key] + delta})
            runway = runway_from_projections(self.generate_deterministic_forecast(modified, baseline, months))
            impact = float(runway - base_runway)
            results.append(SensitivityResult(label, impact, safe_divide(impact, delta)))

        return sorted(results, key=lambda r: abs(r.impact), reverse=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save_scenario_run(
        self,
        name: Optional[str],
        scenario_type: str,
        assumptions: ScenarioAssumptions,
        result: ScenarioForecastResult,
        user_id: Optional[str] = None,
    ) -> Optional[Any]:
        """Persist a scenario run; returns the stored record, or None (logged) on failure."""
        if self.store is None:
            raise ValueError("save_scenario_run requires a ScenarioRunStore.")
        as_of = resolve_as_of(self.config.as_of_date)
        report = result.to_dict()
        record = {
            "organization_id": self.organization_id,
            "created_by": user_id,
            "name": name or f"Scenario {as_of.strftime('%Y-%m-%d')}",
            "scenario_type": scenario_type,
            "assumptions": assumptions.model_dump(),
            "results": report["projected_values"],
            "simulation_count": result.monte_carlo.n_simulations,
            "confidence_intervals": report["confidence_intervals"],
            "projected_runway": result.key_metrics.projected_runway,
            "projected_burn_rate": round_currency(result.key_metrics.projected_burn_rate),
            "break_even_month": result.key_metrics.break_even_month,
            "probability_of_success": result.key_metrics.probability_of_success,
        }
        try:
            return self.store.create_scenario_run(record)
        except Exception:
            logger.exception("Scenario run not saved for %s", self.organization_id)
            return None


def create_forecast_engine(organization_id: str, source: Optional[TransactionSource] = None, **kwargs) -> ScenarioForecastEngine:
    return ScenarioForecastEngine(organization_id, source, **kwargs)
