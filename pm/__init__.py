"""
PM layer — turns simulated cash paths into percentile bands, survival curves and key metrics.
"""

from .aggregator import MonteCarloResult, aggregate_simulations, first_crossing
from .metrics import KeyMetrics, average_burn_rate, break_even_month, compute_key_metrics

__all__ = [
    "MonteCarloResult",
    "aggregate_simulations",
    "first_crossing",
    "KeyMetrics",
    "average_burn_rate",
    "break_even_month",
    "compute_key_metrics",
]
