"""
Shared numeric primitives.

Every function here is pure and total: empty input, zero variance and
non-finite values all map to defined, finite outputs. Standard deviations use
the population definition (divide by N).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats

Numeric = Union[Sequence[float], np.ndarray, pd.Series]


@dataclass(frozen=True)
class TrendComponent:
    """Least-squares line over x = 0..n-1."""
    slope: float
    intercept: float
    r2: float

    def value_at(self, x: float) -> float:
        return self.intercept + self.slope * x


def as_array(values: Numeric) -> np.ndarray:
    """Float array with NaN/±Inf replaced by 0."""
    arr = np.asarray(values, dtype=float).reshape(-1)
    return np.nan_to_num(arr, nan=0.0, posinf=0.0, neginf=0.0)


def mean(values: Numeric) -> float:
    arr = as_array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def std_dev(values: Numeric) -> float:
    arr = as_array(values)
    if arr.size < 2:
        return 0.0
    return float(arr.std(ddof=0))


def median(values: Numeric) -> float:
    arr = as_array(values)
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))


def percentile(values: Numeric, p: float) -> float:
    """p-th percentile (0-100) with linear interpolation between ranks; input may be unsorted."""
    arr = as_array(values)
    if arr.size == 0:
        return 0.0
    p = min(max(float(p), 0.0), 100.0)
    return float(np.percentile(arr, p, method="linear"))


def linear_regression(values: Numeric) -> TrendComponent:
    """
    Fit y = intercept + slope * x over x = 0..n-1.

    R² comes from the variance decomposition 1 - SS_res/SS_tot, which for an
    ordinary least-squares line equals the squared correlation; it is 0 when
    the series has no variance.
    """
    y = as_array(values)
    n = y.size
    if n < 2:
        return TrendComponent(slope=0.0, intercept=float(y[0]) if n == 1 else 0.0, r2=0.0)

    x = np.arange(n, dtype=float)
    if np.ptp(y) == 0:
        return TrendComponent(slope=0.0, intercept=float(y[0]), r2=0.0)

    fit = stats.linregress(x, y)
    r2 = float(fit.rvalue) ** 2 if np.isfinite(fit.rvalue) else 0.0
    return TrendComponent(
        slope=float(fit.slope),
        intercept=float(fit.intercept),
        r2=float(np.clip(r2, 0.0, 1.0)),
    )


def moving_average(series: Numeric, window: int) -> np.ndarray:
    """
    Simple trailing mean over `window` points.

    Returns len(series) - window + 1 values; a series shorter than the window
    is returned unchanged.
    """
    arr = as_array(series)
    if window < 1 or arr.size < window:
        return arr
    return pd.Series(arr).rolling(window).mean().to_numpy()[window - 1:]


def trailing_mean(values: Numeric, window: int) -> float:
    """Mean of the last `window` values (all of them when fewer exist)."""
    arr = as_array(values)
    if arr.size == 0 or window < 1:
        return 0.0
    return float(arr[-window:].mean())


def z_score(value: float, mu: float, sigma: float) -> float:
    if sigma == 0 or not np.isfinite(sigma):
        return 0.0
    return float((value - mu) / sigma)


def iqr_score(value: float, q1: float, q3: float, iqr: float) -> float:
    """Distance beyond the interquartile box, in IQR units (0 inside the box)."""
    if iqr == 0:
        return 0.0
    if value > q3:
        return float((value - q3) / iqr)
    if value < q1:
        return float((q1 - value) / iqr)
    return 0.0
