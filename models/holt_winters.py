"""
Multiplicative Holt-Winters smoothing over a monthly series.

Seasonal state has 12 slots indexed by series position (i % 12). Every
seasonal update is clamped to [0.1, 10] and the slots are renormalized to
mean 1 whenever the position is a multiple of 12.

Smoothing parameters are picked by grid search minimizing mean absolute
one-step-ahead error.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import product
from typing import List, Optional, Tuple

import numpy as np

from statskit import as_array

SEASON_LENGTH = 12
SEASONAL_FLOOR = 0.1
SEASONAL_CAP = 10.0

ALPHA_GRID = (0.1, 0.3, 0.5, 0.7, 0.9)
BETA_GRID = (0.05, 0.15, 0.25)
GAMMA_GRID = (0.05, 0.15, 0.25)


@dataclass(frozen=True)
class HoltWintersParams:
    alpha: float  # level
    beta: float   # trend
    gamma: float  # seasonal


DEFAULT_PARAMS = HoltWintersParams(alpha=0.3, beta=0.1, gamma=0.1)


@dataclass(frozen=True)
class HoltWintersFit:
    params: HoltWintersParams
    level: float
    trend: float
    seasonals: Tuple[float, ...]
    error: Optional[float]  # None when no parameter set could be evaluated

    @property
    def fitted(self) -> bool:
        return self.error is not None

    def project(self, n_observed: int, horizon: int) -> np.ndarray:
        """Forecasts for positions n_observed .. n_observed + horizon - 1."""
        s = np.asarray(self.seasonals, dtype=float)
        h = np.arange(horizon)
        return (self.level + self.trend * (h + 1)) * s[(n_observed + h) % SEASON_LENGTH]


def normalize_seasonals(seasonals: np.ndarray) -> np.ndarray:
    avg = float(np.mean(seasonals)) if len(seasonals) else 0.0
    if avg > 0:
        return seasonals / avg
    return seasonals.copy()


def _clamp(value):
    return np.clip(value, SEASONAL_FLOOR, SEASONAL_CAP)


def initialize(data: np.ndarray, period: int) -> Tuple[float, float, np.ndarray]:
    """Initial level, trend and seasonal slots from the first one/two periods."""
    level = float(np.mean(data[:period])) if period > 0 else 0.0
    nxt = data[period:2 * period]
    trend = (float(np.mean(nxt)) - level) / period if nxt.size and period > 0 else 0.0

    seasonals = np.ones(SEASON_LENGTH, dtype=float)
    k = min(SEASON_LENGTH, data.size)
    if level != 0:
        seasonals[:k] = _clamp(data[:k] / level)
    return level, trend, normalize_seasonals(seasonals)


def _smooth(data: np.ndarray, params: HoltWintersParams, period: int):
    level, trend, seasonals = initialize(data, period)
    errors: List[float] = []

    for i in range(period, data.size):
        idx = i % SEASON_LENGTH
        observed = float(data[i])
        errors.append(abs(observed - (level + trend) * seasonals[idx]))

        prev_level = level
        level = params.alpha * (observed / (seasonals[idx] or 1.0)) + (1 - params.alpha) * (level + trend)
        trend = params.beta * (level - prev_level) + (1 - params.beta) * trend
        updated = params.gamma * (observed / (level or 1.0)) + (1 - params.gamma) * seasonals[idx]
        seasonals[idx] = float(_clamp(updated))

        if i % SEASON_LENGTH == 0:
            seasonals = normalize_seasonals(seasonals)

    return level, trend, seasonals, errors


def evaluate(data, params: HoltWintersParams, period: int = SEASON_LENGTH) -> float:
    """Mean absolute one-step-ahead error; inf when the series is shorter than period + 2."""
    arr = as_array(data)
    if arr.size < period + 2:
        return float("inf")
    _, _, _, errors = _smooth(arr, params, period)
    err = float(np.mean(errors)) if errors else float("inf")
    return err if np.isfinite(err) else float("inf")


def optimize_params(data, period: int = SEASON_LENGTH) -> Tuple[HoltWintersParams, float]:
    """Grid search; ties keep the first (smallest) parameter set."""
    arr = as_array(data)
    best, best_error = DEFAULT_PARAMS, float("inf")
    for alpha, beta, gamma in product(ALPHA_GRID, BETA_GRID, GAMMA_GRID):
        params = HoltWintersParams(alpha, beta, gamma)
        error = evaluate(arr, params, period)
        if error < best_error:
            best, best_error = params, error
    return best, best_error


def fit(data) -> HoltWintersFit:
    """Optimize parameters, then run the smoother over the whole series."""
    arr = as_array(data)
    period = min(SEASON_LENGTH, arr.size)
    params, error = optimize_params(arr, period)
    level, trend, seasonals, _ = _smooth(arr, params, period)

    if not (np.isfinite(level) and np.isfinite(trend)):
        level, trend = 0.0, 0.0
    return HoltWintersFit(
        params=params,
        level=float(level),
        trend=float(trend),
        seasonals=tuple(float(s) for s in seasonals),
        error=error if np.isfinite(error) else None,
    )
