import pandas as pd
import pytest

from data_prep import calculate_burn_trend, calculate_monthly_burn, classify_payroll, compute_burn_metrics


def _quarter() -> pd.DataFrame:
    rows = []
    for month in ("2024-01", "2024-02", "2024-03"):
        rows += [
            {"date": f"{month}-02", "amount": 10_000.0, "vendor_id": "customer", "category_id": "sales",
             "is_recurring": True, "is_payroll": None},
            {"date": f"{month}-15", "amount": -30_000.0, "vendor_id": "Gusto", "category_id": "c-people",
             "is_recurring": True, "is_payroll": None},
            {"date": f"{month}-20", "amount": -10_000.0, "vendor_id": "landlord", "category_id": "c-rent",
             "is_recurring": False, "is_payroll": None},
        ]
    rows.append({"date": "2024-04-05", "amount": -99_000.0, "vendor_id": "x", "category_id": None,
                 "is_recurring": False, "is_payroll": None})
    frame = pd.DataFrame(rows)
    frame["date"] = pd.to_datetime(frame["date"])
    return frame


def test_classify_payroll_order():
    tx = pd.DataFrame({
        "vendor_id": ["Gusto", "Gusto", "acme", "acme", "acme"],
        "category_id": [None, None, "c-people", "c-other", None],
        "is_payroll": pd.array([pd.NA, False, pd.NA, pd.NA, True], dtype="boolean"),
    })
    out = classify_payroll(tx, {"c-people": "Payroll Expenses", "c-other": "Travel"})
    assert out.tolist() == [True, False, True, False, True]


def test_classify_payroll_without_mapping_ignores_categories():
    tx = pd.DataFrame({"vendor_id": ["acme"], "category_id": ["payroll"], "is_payroll": [None]})
    assert classify_payroll(tx).tolist() == [False]


def test_compute_burn_metrics():
    burn = compute_burn_metrics(_quarter(), pd.Timestamp("2024-01-01"), pd.Timestamp("2024-03-31 23:59:59"))
    assert burn.revenue == 30_000.0
    assert burn.gross_burn == 120_000.0
    assert burn.net_burn == 90_000.0
    assert burn.payroll == 90_000.0
    assert burn.non_payroll == 30_000.0
    assert burn.recurring == 90_000.0
    assert burn.one_time == 30_000.0
    assert burn.to_dict()["net_burn"] == 90_000.0


def test_monthly_burn_uses_complete_months():
    burn = calculate_monthly_burn(_quarter(), 3, as_of_date=pd.Timestamp("2024-04-15"))
    assert burn == pytest.approx(30_000.0)


def test_monthly_burn_rejects_zero_months():
    with pytest.raises(ValueError):
        calculate_monthly_burn(_quarter(), 0)


def test_burn_trend_ends_with_as_of_month():
    trend = calculate_burn_trend(_quarter(), 4, as_of_date=pd.Timestamp("2024-04-15"))
    assert trend["month"].tolist() == list(pd.date_range("2024-01-01", periods=4, freq="MS"))
    assert trend["burn"].tolist() == [30_000.0, 30_000.0, 30_000.0, 99_000.0]
