"""
Cash-flow forecasting models.

  holt_winters.py    — multiplicative Holt-Winters smoother with grid-searched parameters
  artifact.py        — versioned TrainedForecastModel (pydantic, JSON-serializable)
  store.py           — JSON / in-memory model stores and the per-organization ModelCache
  cashflow_model.py  — CashFlowForecastModel: train, forecast, metrics, deviation checks
"""

from .artifact import MODEL_VERSION, TrainedForecastModel
from .store import InMemoryModelStore, JsonFileModelStore, ModelCache
from .cashflow_model import (
    CashFlowForecastModel,
    ForecastDeviation,
    ForecastedMetrics,
    ForecastResult,
    MonthlyForecast,
    TrainingResult,
    create_cash_flow_forecast_model,
)

__all__ = [
    "MODEL_VERSION",
    "TrainedForecastModel",
    "InMemoryModelStore",
    "JsonFileModelStore",
    "ModelCache",
    "CashFlowForecastModel",
    "ForecastDeviation",
    "ForecastedMetrics",
    "ForecastResult",
    "MonthlyForecast",
    "TrainingResult",
    "create_cash_flow_forecast_model",
]
