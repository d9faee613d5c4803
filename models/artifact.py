"""
Trained cash-flow forecast model artifact.

One artifact per organization, replaced wholesale on every successful
training run. Serialized as JSON by the model stores.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

MODEL_VERSION = "1.0.0"


def major_version(version: str) -> str:
    return str(version).split(".", 1)[0]


class TrendParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    slope: float = 0.0
    intercept: float = 0.0
    r2: float = Field(default=0.0, ge=0.0, le=1.0)

    def value_at(self, x: float) -> float:
        return self.intercept + self.slope * x


class SeasonalIndex(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: int = Field(ge=1, le=12)
    inflow_index: float = 1.0
    outflow_index: float = 1.0


class SmoothingParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    alpha: float = Field(gt=0.0, lt=1.0)
    beta: float = Field(gt=0.0, lt=1.0)
    gamma: float = Field(gt=0.0, lt=1.0)


class MovingAverages(BaseModel):
    model_config = ConfigDict(frozen=True)

    ma3: float = 0.0
    ma6: float = 0.0
    ma12: float = 0.0


class MonthlyFlow(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: str  # YYYY-MM
    inflows: float
    outflows: float
    net_cash_flow: float


class TrainedForecastModel(BaseModel):
    version: str = MODEL_VERSION
    trained_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    organization_id: str
    data_months: int = Field(ge=0)

    # baseline statistics
    avg_inflows: float
    avg_outflows: float
    avg_net_cash_flow: float

    # volatility (population std dev)
    inflow_std_dev: float = Field(ge=0.0)
    outflow_std_dev: float = Field(ge=0.0)
    net_cash_flow_std_dev: float = Field(ge=0.0)

    inflow_trend: TrendParams
    outflow_trend: TrendParams
    net_cash_flow_trend: TrendParams

    seasonal_indices: List[SeasonalIndex] = Field(min_length=12, max_length=12)

    # Holt-Winters state over net cash flow
    hw_params: SmoothingParams
    hw_fitted: bool = False
    hw_error: Optional[float] = None
    hw_level: float = 0.0
    hw_trend: float = 0.0
    hw_seasonals: List[float] = Field(min_length=12, max_length=12)

    moving_averages: MovingAverages
    last_month: MonthlyFlow
    recent_months: List[MonthlyFlow] = Field(default_factory=list)

    def seasonal_for(self, calendar_month: int) -> SeasonalIndex:
        return self.seasonal_indices[(calendar_month - 1) % 12]
