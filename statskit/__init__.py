"""
StatsKit — shared numeric primitives and the seeded normal sampler.
"""

from .primitives import (
    TrendComponent,
    as_array,
    mean,
    std_dev,
    median,
    percentile,
    linear_regression,
    moving_average,
    trailing_mean,
    z_score,
    iqr_score,
)
from .sampler import MonteCarloSampler, NormalSampler

__all__ = [
    "TrendComponent",
    "as_array",
    "mean",
    "std_dev",
    "median",
    "percentile",
    "linear_regression",
    "moving_average",
    "trailing_mean",
    "z_score",
    "iqr_score",
    "MonteCarloSampler",
    "NormalSampler",
]
