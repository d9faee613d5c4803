"""
Monte Carlo runner — repeats the deterministic month step with shocked growth.

Each simulation draws, per month, one revenue shock and one expense shock
from its own NormalSampler:

    revenue_factor = (1 + revenue growth) * (1 + revenue_volatility * z_rev)
    expense_factor = (1 + expense growth) * (1 + expense_volatility * z_exp)

With both volatilities at 0 a simulation reproduces the deterministic cash
path exactly.

Simulation i always receives the i-th child stream of the seed, so results
are identical for any max_workers.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np
import pandas as pd

from pm.aggregator import MonteCarloResult, aggregate_simulations
from statskit import MonteCarloSampler, NormalSampler

from .assumptions import BaselineMetrics, ScenarioAssumptions
from .cashflow import month_labels, step_month

logger = logging.getLogger(__name__)


def run_single_simulation(
    assumptions: ScenarioAssumptions,
    baseline: BaselineMetrics,
    months: int,
    sampler: NormalSampler,
) -> np.ndarray:
    """Ending-cash path of one simulation."""
    revenue_growth, expense_growth = baseline.growth_factors(assumptions)
    revenue_vol = assumptions.effective_revenue_volatility
    expense_vol = assumptions.effective_expense_volatility

    shocks = sampler.standard_normal(2 * months).reshape(months, 2)
    revenue, base_expenses = baseline.avg_revenue, baseline.avg_expenses
    cash = float(assumptions.starting_cash)

    path = np.empty(months, dtype=float)
    for i in range(months):
        revenue, base_expenses, _, _, cash = step_month(
            i,
            revenue,
            base_expenses,
            cash,
            assumptions,
            revenue_growth * (1 + revenue_vol * shocks[i, 0]),
            expense_growth * (1 + expense_vol * shocks[i, 1]),
        )
        path[i] = cash
    return path


def run_monte_carlo_simulation(
    assumptions: ScenarioAssumptions,
    baseline: BaselineMetrics,
    months: int,
    *,
    simulation_count: int = 1000,
    seed: Optional[int] = None,
    max_workers: int = 1,
    as_of_date: Optional[pd.Timestamp] = None,
) -> MonteCarloResult:
    """Run `simulation_count` independent paths and reduce them."""
    if simulation_count < 1:
        raise ValueError("simulation_count must be at least 1.")
    samplers = MonteCarloSampler(seed).spawn(simulation_count)

    def _run(sampler: NormalSampler) -> np.ndarray:
        return run_single_simulation(assumptions, baseline, months, sampler)

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            paths = list(pool.map(_run, samplers))
    else:
        paths = [_run(s) for s in samplers]

    matrix = np.vstack(paths) if months > 0 else np.zeros((simulation_count, 0))
    logger.debug("Ran %d simulations over %d months", simulation_count, months)
    return aggregate_simulations(matrix, month_labels(months, as_of_date))
