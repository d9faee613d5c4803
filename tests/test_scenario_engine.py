import numpy as np
import pandas as pd
import pytest
from pydantic import ValidationError

from core.config import ForecastConfig, ScenarioConfig
from engine import (
    RUNWAY_SENTINEL,
    BaselineMetrics,
    PlannedExpense,
    PlannedHire,
    ScenarioAssumptions,
    ScenarioForecastEngine,
    project_deterministic,
    run_single_simulation,
)
from models import CashFlowForecastModel
from statskit import MonteCarloSampler

from conftest import AS_OF, ORG, FailingSource, RecordingRunStore

BURNING = BaselineMetrics(avg_revenue=50_000.0, avg_expenses=100_000.0, months=6)


def _engine(source=None, **config):
    config.setdefault("as_of_date", AS_OF)
    config.setdefault("seed", 42)
    config.setdefault("simulation_count", 200)
    return ScenarioForecastEngine(ORG, source, config=ScenarioConfig(**config))


def _flat(**kwargs):
    kwargs.setdefault("starting_cash", 1_000_000.0)
    return ScenarioAssumptions(monthly_revenue_growth=0.0, monthly_expense_growth=0.0, **kwargs)


# ----------------------------------------------------------------------
# Assumptions
# ----------------------------------------------------------------------
def test_assumptions_accept_camel_case():
    assumptions = ScenarioAssumptions.model_validate({
        "startingCash": 250_000,
        "monthlyRevenueGrowth": 0.02,
        "plannedHires": [{"role": "eng", "annualSalary": 120_000, "benefits": 24_000, "startMonth": 2}],
        "fundraiseAmount": 1_000_000,
        "fundraiseMonth": 0,
    })
    assert assumptions.planned_hires[0].monthly_cost == pytest.approx(12_000.0)
    assert assumptions.fundraise_at(0) == 1_000_000.0
    assert assumptions.effective_revenue_volatility == 0.1
    assert assumptions.effective_expense_volatility == 0.05


@pytest.mark.parametrize(
    "payload",
    [
        {"starting_cash": 1.0, "revenue_volatility": -0.1},
        {"starting_cash": 1.0, "fundraise_month": -1},
        {"starting_cash": 1.0, "planned_expenses": [{"monthly_amount": 10.0, "start_month": 5, "end_month": 2}]},
        {"starting_cash": 1.0, "planned_hires": [{"annual_salary": -1.0}]},
    ],
)
def test_invalid_assumptions_rejected(payload):
    with pytest.raises(ValidationError):
        ScenarioAssumptions(**payload)


def test_explicit_zero_growth_overrides_baseline():
    baseline = BaselineMetrics(avg_revenue=100.0, avg_expenses=50.0, revenue_growth=0.05, expense_growth=0.02)
    assert baseline.growth_factors(ScenarioAssumptions(starting_cash=0.0)) == pytest.approx((1.05, 1.02))
    assert baseline.growth_factors(_flat()) == (1.0, 1.0)


# ----------------------------------------------------------------------
# Baseline
# ----------------------------------------------------------------------
def test_baseline_growth_is_monthly():
    history = pd.DataFrame({"revenue": [100.0, 100.0, 100.0, 130.0, 130.0, 130.0], "expenses": [50.0] * 6})
    baseline = ScenarioForecastEngine.compute_baseline_metrics(history)
    assert baseline.avg_revenue == pytest.approx(115.0)
    assert baseline.avg_expenses == pytest.approx(50.0)
    # 30% over half a year -> 60% annualized -> 5% a month
    assert baseline.revenue_growth == pytest.approx(0.05)
    assert baseline.expense_growth == 0.0
    assert baseline.months == 6


def test_baseline_degenerate_history():
    assert ScenarioForecastEngine.compute_baseline_metrics(pd.DataFrame(columns=["revenue", "expenses"])) == BaselineMetrics()

    single = ScenarioForecastEngine.compute_baseline_metrics(pd.DataFrame({"revenue": [10.0], "expenses": [5.0]}))
    assert single.revenue_growth == 0.0

    no_revenue = ScenarioForecastEngine.compute_baseline_metrics(
        pd.DataFrame({"revenue": [0.0, 0.0, 0.0, 50.0], "expenses": [5.0] * 4})
    )
    assert no_revenue.revenue_growth == 0.0


def test_historical_data_uses_observed_months(ledger):
    history = _engine(ledger).get_historical_data()
    assert list(history.columns) == ["month", "revenue", "expenses"]
    assert len(history) == 6
    assert (history["expenses"] > 0).all()


def test_historical_data_fetch_failure_is_empty():
    assert _engine(FailingSource()).get_historical_data().empty


# ----------------------------------------------------------------------
# Deterministic projection
# ----------------------------------------------------------------------
def test_fundraise_lands_in_its_month():
    without = project_deterministic(_flat(), BURNING, 12, as_of_date=AS_OF)
    with_raise = project_deterministic(
        _flat(fundraise_amount=500_000.0, fundraise_month=3), BURNING, 12, as_of_date=AS_OF
    )
    diff = np.array([b.ending_cash - a.ending_cash for a, b in zip(without, with_raise)])
    np.testing.assert_allclose(diff[:3], 0.0)
    np.testing.assert_allclose(diff[3:], 500_000.0)
    jump = with_raise[3].ending_cash - with_raise[2].ending_cash
    assert jump == pytest.approx(500_000.0 + with_raise[3].net_cash_flow)


def test_month_labels_follow_as_of():
    projections = project_deterministic(_flat(), BURNING, 3, as_of_date=AS_OF)
    assert [p.month for p in projections] == ["2024-07", "2024-08", "2024-09"]


def test_planned_hires_do_not_accumulate():
    hire = PlannedHire(role="eng", annual_salary=120_000.0, start_month=2)
    projections = project_deterministic(_flat(planned_hires=[hire]), BURNING, 6, as_of_date=AS_OF)
    assert [p.expenses for p in projections] == [100_000.0, 100_000.0] + [110_000.0] * 4


def test_planned_expense_window():
    expense = PlannedExpense(name="conference", monthly_amount=5_000.0, start_month=1, end_month=2)
    projections = project_deterministic(_flat(planned_expenses=[expense]), BURNING, 4, as_of_date=AS_OF)
    assert [p.expenses for p in projections] == [100_000.0, 105_000.0, 105_000.0, 100_000.0]


def test_runway_remaining():
    burning = project_deterministic(_flat(starting_cash=300_000.0), BURNING, 2, as_of_date=AS_OF)
    assert burning[0].runway_remaining == pytest.approx(250_000.0 / 50_000.0)

    profitable = project_deterministic(
        _flat(), BaselineMetrics(avg_revenue=10.0, avg_expenses=5.0), 2, as_of_date=AS_OF
    )
    assert profitable[0].runway_remaining == RUNWAY_SENTINEL


def test_zero_volatility_simulation_matches_deterministic():
    assumptions = ScenarioAssumptions(
        starting_cash=750_000.0,
        monthly_revenue_growth=0.03,
        monthly_expense_growth=0.01,
        revenue_volatility=0.0,
        expense_volatility=0.0,
        planned_hires=[PlannedHire(annual_salary=90_000.0, benefits=10_000.0, start_month=4)],
        fundraise_amount=250_000.0,
        fundraise_month=6,
    )
    deterministic = [p.ending_cash for p in project_deterministic(assumptions, BURNING, 18, as_of_date=AS_OF)]
    sampler = MonteCarloSampler(seed=9).spawn(1)[0]
    np.testing.assert_array_equal(run_single_simulation(assumptions, BURNING, 18, sampler), deterministic)


# ----------------------------------------------------------------------
# Orchestration
# ----------------------------------------------------------------------
def test_generate_forecast(ledger):
    result = _engine(ledger).generate_forecast(ScenarioAssumptions(starting_cash=500_000.0))
    assert len(result.projected_values) == 12
    assert result.baseline.months == 6
    assert result.monte_carlo.n_simulations == 200
    assert 0.0 <= result.key_metrics.probability_of_success <= 1.0
    assert result.model_cross_check is None

    df = result.to_dataframe()
    assert {"month", "ending_cash", "p10", "p50", "p90", "probability_of_survival"} <= set(df.columns)
    assert (df["p10"] <= df["p50"]).all() and (df["p50"] <= df["p90"]).all()

    report = result.to_dict()
    assert len(report["projected_values"]) == 12
    assert set(report["key_metrics"]) == {
        "projected_runway", "projected_burn_rate", "break_even_month", "probability_of_success",
    }


def test_generate_forecast_is_reproducible_with_seed(ledger):
    assumptions = ScenarioAssumptions(starting_cash=300_000.0)
    first = _engine(ledger).generate_forecast(assumptions)
    second = _engine(ledger).generate_forecast(assumptions)
    pd.testing.assert_frame_equal(first.confidence_intervals, second.confidence_intervals)
    assert first.key_metrics == second.key_metrics


def test_generate_forecast_without_history():
    result = _engine(FailingSource()).generate_forecast(_flat(starting_cash=100.0), forecast_months=3)
    assert result.baseline == BaselineMetrics()
    assert [p.ending_cash for p in result.projected_values] == [100.0, 100.0, 100.0]
    assert result.key_metrics.probability_of_success == 1.0


def test_cross_check_against_trained_model(ledger):
    forecast_model = CashFlowForecastModel(ORG, ledger, config=ForecastConfig(as_of_date=AS_OF))
    assert forecast_model.train().success

    engine = ScenarioForecastEngine(
        ORG, ledger, config=ScenarioConfig(as_of_date=AS_OF, seed=1, simulation_count=50),
        forecast_model=forecast_model,
    )
    check = engine.generate_forecast(ScenarioAssumptions(starting_cash=1_000_000.0), 6).model_cross_check
    assert len(check.scenario_net_cash_flow) == len(check.model_net_cash_flow) == 6
    assert check.mean_absolute_gap >= 0.0
    assert 0.0 <= check.model_confidence <= 1.0


def test_sensitivity_analysis():
    results = _engine().run_sensitivity_analysis(_flat(starting_cash=300_000.0), BURNING, 12)
    assert [r.driver for r in results] == [
        "Revenue Growth", "Starting Cash", "Expense Growth", "Revenue Volatility", "Expense Volatility",
    ]
    by_driver = {r.driver: r for r in results}
    assert by_driver["Revenue Growth"].impact == 1.0
    assert by_driver["Revenue Growth"].sensitivity == pytest.approx(100.0)
    assert by_driver["Starting Cash"].impact == 1.0
    assert by_driver["Starting Cash"].sensitivity == pytest.approx(1 / 30_000.0)
    assert by_driver["Expense Growth"].impact == 0.0
    assert by_driver["Revenue Volatility"].impact == 0.0
    assert by_driver["Revenue Volatility"].sensitivity == 0.0


def test_save_scenario_run():
    store = RecordingRunStore()
    engine = ScenarioForecastEngine(ORG, config=ScenarioConfig(as_of_date=AS_OF, seed=3, simulation_count=20))
    engine.store = store
    assumptions = _flat(starting_cash=200_000.0)
    result = engine.generate_forecast(assumptions, 6)

    saved = engine.save_scenario_run(None, "custom", assumptions, result, user_id="user-9")
    assert saved["id"] == 1
    record = store.records[0]
    assert record["name"] == "Scenario 2024-06-30"
    assert record["created_by"] == "user-9"
    assert record["simulation_count"] == 20
    assert record["assumptions"]["starting_cash"] == 200_000.0
    assert len(record["results"]) == 6


def test_save_scenario_run_failures():
    engine = _engine(simulation_count=10)
    assumptions = _flat()
    result = engine.generate_forecast(assumptions, 3)
    with pytest.raises(ValueError):
        engine.save_scenario_run("x", "custom", assumptions, result)

    engine.store = RecordingRunStore(fail=True)
    assert engine.save_scenario_run("x", "custom", assumptions, result) is None
