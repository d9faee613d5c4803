"""
Scenario engine: assumptions, deterministic monthly cash math, Monte Carlo runner,
trailing-burn runway and the forecast orchestrator.
"""

from .assumptions import BaselineMetrics, PlannedExpense, PlannedHire, ScenarioAssumptions
from .cashflow import (
    RUNWAY_SENTINEL,
    MonthlyProjection,
    project_deterministic,
    projections_to_dataframe,
    runway_from_projections,
)
from .runner import run_monte_carlo_simulation, run_single_simulation
from .runway import (
    HireCost,
    RunwayMetrics,
    RunwayScenario,
    calculate_runway,
    calculate_runway_with_scenarios,
)
from .forecast_engine import (
    ModelCrossCheck,
    ScenarioForecastEngine,
    ScenarioForecastResult,
    SensitivityResult,
    create_forecast_engine,
)

__all__ = [
    "BaselineMetrics",
    "PlannedExpense",
    "PlannedHire",
    "ScenarioAssumptions",
    "RUNWAY_SENTINEL",
    "MonthlyProjection",
    "project_deterministic",
    "projections_to_dataframe",
    "runway_from_projections",
    "run_monte_carlo_simulation",
    "run_single_simulation",
    "HireCost",
    "RunwayMetrics",
    "RunwayScenario",
    "calculate_runway",
    "calculate_runway_with_scenarios",
    "ModelCrossCheck",
    "ScenarioForecastEngine",
    "ScenarioForecastResult",
    "SensitivityResult",
    "create_forecast_engine",
]
