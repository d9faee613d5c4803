"""
Analytics configuration.
Thresholds that are tuned empirically live next to the code that uses them
as named module constants; these dataclasses hold the caller-tunable knobs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pandas as pd


@dataclass(frozen=True)
class AnomalyConfig:
    sensitivity_multiplier: float = 2.0

    # daily spend analysis
    baseline_window_days: int = 90
    min_daily_points: int = 14
    moving_average_window: int = 7

    # vendor / category monthly analysis
    min_group_months: int = 3

    as_of_date: Optional[pd.Timestamp] = None

    def __post_init__(self) -> None:
        if self.sensitivity_multiplier <= 0:
            raise ValueError("sensitivity_multiplier must be positive.")
        if self.moving_average_window < 1:
            raise ValueError("moving_average_window must be at least 1.")


@dataclass(frozen=True)
class ForecastConfig:
    months_back: int = 24
    forecast_months: int = 12

    # training floors
    min_transactions: int = 30
    min_months: int = 6

    # artifacts older than this are ignored by the model cache (None = never stale)
    max_model_age_days: Optional[int] = None

    as_of_date: Optional[pd.Timestamp] = None

    def __post_init__(self) -> None:
        if self.months_back < 1:
            raise ValueError("months_back must be at least 1.")
        if self.forecast_months < 1:
            raise ValueError("forecast_months must be at least 1.")


@dataclass(frozen=True)
class ScenarioConfig:
    simulation_count: int = 1000
    forecast_months: int = 12
    history_months: int = 6

    # None draws fresh OS entropy; pass an int for reproducible runs
    seed: Optional[int] = None
    max_workers: int = 1

    as_of_date: Optional[pd.Timestamp] = None

    def __post_init__(self) -> None:
        if self.simulation_count < 1:
            raise ValueError("simulation_count must be at least 1.")
        if self.forecast_months < 1:
            raise ValueError("forecast_months must be at least 1.")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1.")
