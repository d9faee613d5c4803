import numpy as np
import pandas as pd
import pytest

from engine import BaselineMetrics, ScenarioAssumptions, project_deterministic, run_monte_carlo_simulation
from pm import aggregate_simulations, average_burn_rate, break_even_month, compute_key_metrics, first_crossing

from conftest import AS_OF

MONTHS = ["2024-07", "2024-08", "2024-09"]

BASELINE = BaselineMetrics(avg_revenue=100_000.0, avg_expenses=140_000.0, months=6)
ASSUMPTIONS = ScenarioAssumptions(
    starting_cash=500_000.0,
    monthly_revenue_growth=0.0,
    monthly_expense_growth=0.0,
    revenue_volatility=0.1,
    expense_volatility=0.05,
)


@pytest.fixture
def paths():
    return np.array([
        [10.0, 5.0, -1.0],
        [10.0, -2.0, -3.0],
        [10.0, 8.0, 6.0],
        [10.0, 9.0, 7.0],
    ])


def test_first_crossing(paths):
    assert first_crossing(paths).tolist() == [2, 1, 3, 3]


def test_aggregate_simulations(paths):
    result = aggregate_simulations(paths, MONTHS)
    assert result.n_simulations == 4
    np.testing.assert_allclose(result.probability_of_survival, [1.0, 0.75, 0.5])
    assert result.final_survival == 0.5
    assert result.expected_runway == pytest.approx(2.25)
    assert result.runway_distribution == [(1, 0.25), (2, 0.25), (3, 0.5)]

    bands = result.percentiles
    assert bands["month"].tolist() == MONTHS
    assert bands["p50"].iloc[0] == 10.0
    # month 2 values sorted: -2, 5, 8, 9
    assert bands["p50"].iloc[1] == pytest.approx(6.5)
    assert bands["p10"].iloc[1] == pytest.approx(0.1)


def test_aggregate_rejects_mismatched_shape(paths):
    with pytest.raises(ValueError):
        aggregate_simulations(paths, MONTHS[:2])


def test_aggregate_scrubs_non_finite():
    result = aggregate_simulations(np.array([[np.nan, np.inf]]), MONTHS[:2])
    assert np.isfinite(result.percentiles[["p10", "p50", "p90"]].to_numpy()).all()
    assert result.expected_runway == 0.0


def test_result_reporting(paths):
    result = aggregate_simulations(paths * 1000.4, MONTHS)
    df = result.to_dataframe()
    assert (df["p50"] == df["p50"].round()).all()
    report = result.to_dict()
    assert report["n_simulations"] == 4
    assert report["runway_distribution"][0] == {"months": 1, "probability": 0.25}


def test_seeded_runs_are_reproducible():
    a = run_monte_carlo_simulation(ASSUMPTIONS, BASELINE, 12, simulation_count=300, seed=11, as_of_date=AS_OF)
    b = run_monte_carlo_simulation(ASSUMPTIONS, BASELINE, 12, simulation_count=300, seed=11, as_of_date=AS_OF)
    c = run_monte_carlo_simulation(ASSUMPTIONS, BASELINE, 12, simulation_count=300, seed=12, as_of_date=AS_OF)
    np.testing.assert_array_equal(a.simulations, b.simulations)
    assert not np.array_equal(a.simulations, c.simulations)


def test_worker_count_does_not_change_results():
    serial = run_monte_carlo_simulation(ASSUMPTIONS, BASELINE, 12, simulation_count=200, seed=5, as_of_date=AS_OF)
    pooled = run_monte_carlo_simulation(
        ASSUMPTIONS, BASELINE, 12, simulation_count=200, seed=5, max_workers=4, as_of_date=AS_OF
    )
    np.testing.assert_array_equal(serial.simulations, pooled.simulations)
    pd.testing.assert_frame_equal(serial.percentiles, pooled.percentiles)


def test_zero_volatility_paths_match_deterministic():
    calm = ASSUMPTIONS.model_copy(update={"revenue_volatility": 0.0, "expense_volatility": 0.0})
    result = run_monte_carlo_simulation(calm, BASELINE, 12, simulation_count=25, seed=1, as_of_date=AS_OF)
    deterministic = [p.ending_cash for p in project_deterministic(calm, BASELINE, 12, as_of_date=AS_OF)]
    for row in result.simulations:
        np.testing.assert_array_equal(row, deterministic)
    np.testing.assert_array_equal(result.percentiles["p50"].to_numpy(), deterministic)


def test_estimates_converge_with_more_simulations():
    small = run_monte_carlo_simulation(ASSUMPTIONS, BASELINE, 12, simulation_count=5_000, seed=100, as_of_date=AS_OF)
    large = run_monte_carlo_simulation(ASSUMPTIONS, BASELINE, 12, simulation_count=20_000, seed=200, as_of_date=AS_OF)
    assert abs(small.final_survival - large.final_survival) < 0.04
    assert abs(small.expected_runway - large.expected_runway) < 0.25
    np.testing.assert_allclose(small.probability_of_survival, large.probability_of_survival, atol=0.04)


def test_simulation_count_must_be_positive():
    with pytest.raises(ValueError):
        run_monte_carlo_simulation(ASSUMPTIONS, BASELINE, 12, simulation_count=0)


def test_key_metrics():
    projections = project_deterministic(
        ScenarioAssumptions(starting_cash=100_000.0, monthly_revenue_growth=0.1, monthly_expense_growth=0.0),
        BaselineMetrics(avg_revenue=80_000.0, avg_expenses=100_000.0),
        6,
        as_of_date=AS_OF,
    )
    # revenue 88k, 96.8k, 106.48k, ... against flat 100k expenses
    assert break_even_month(projections) == "2024-09"
    assert average_burn_rate(projections) == pytest.approx((12_000.0 + 3_200.0) / 2)

    mc = run_monte_carlo_simulation(
        ScenarioAssumptions(starting_cash=100_000.0, revenue_volatility=0.0, expense_volatility=0.0,
                            monthly_revenue_growth=0.1, monthly_expense_growth=0.0),
        BaselineMetrics(avg_revenue=80_000.0, avg_expenses=100_000.0),
        6,
        simulation_count=10,
        seed=0,
        as_of_date=AS_OF,
    )
    metrics = compute_key_metrics(projections, mc)
    assert metrics.break_even_month == "2024-09"
    assert metrics.probability_of_success == 1.0
    assert metrics.projected_runway == 6.0
    assert metrics.to_dict()["projected_burn_rate"] == 7_600.0


def test_no_break_even_when_always_burning():
    projections = project_deterministic(
        ScenarioAssumptions(starting_cash=0.0, monthly_revenue_growth=0.0, monthly_expense_growth=0.0),
        BaselineMetrics(avg_revenue=1.0, avg_expenses=2.0),
        3,
        as_of_date=AS_OF,
    )
    assert break_even_month(projections) is None
