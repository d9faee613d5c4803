from __future__ import annotations

from typing import Any, Dict, List

import numpy as np
import pandas as pd
import pytest

from core.ports import AnomalyStore, ScenarioRunStore, TransactionSource
from data_prep import InMemoryLedger

AS_OF = pd.Timestamp("2024-06-30")
ORG = "org-1"


def make_ledger(months: int = 24, end: pd.Timestamp = AS_OF, seed: int = 7) -> pd.DataFrame:
    """Monthly revenue, payroll, rent and a few noisy operating expenses."""
    rng = np.random.default_rng(seed)
    rows: List[Dict[str, Any]] = []
    for i, period in enumerate(pd.period_range(end=end.to_period("M"), periods=months, freq="M")):
        start = period.start_time
        rows += [
            {"date": start + pd.Timedelta(days=1), "amount": 60_000 + 1_500 * i + rng.normal(0, 2_000),
             "vendor_id": "customer-a", "category_id": "sales", "is_recurring": True, "is_payroll": None},
            {"date": start + pd.Timedelta(days=14), "amount": -40_000.0,
             "vendor_id": "Gusto Payroll", "category_id": "payroll", "is_recurring": True, "is_payroll": True},
            {"date": start + pd.Timedelta(days=4), "amount": -8_000.0,
             "vendor_id": "landlord", "category_id": "rent", "is_recurring": True, "is_payroll": False},
            {"date": start + pd.Timedelta(days=9), "amount": -(1_500 + rng.normal(0, 150)),
             "vendor_id": "aws", "category_id": "software", "is_recurring": True, "is_payroll": False},
            {"date": start + pd.Timedelta(days=19), "amount": -(300 + rng.normal(0, 60)),
             "vendor_id": "office depot", "category_id": "supplies", "is_recurring": False, "is_payroll": False},
            {"date": start + pd.Timedelta(days=24), "amount": -(200 + rng.normal(0, 40)),
             "vendor_id": None, "category_id": None, "is_recurring": False, "is_payroll": None},
        ]
    return pd.DataFrame(rows)


def make_daily_spend_ledger(days: int = 120, end: pd.Timestamp = AS_OF, seed: int = 11, spike: float = 5_000.0) -> pd.DataFrame:
    """One expense per day around $100 with a spike on the last day."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(end=end, periods=days, freq="D")
    amounts = -(100 + rng.normal(0, 5, size=days))
    amounts[-1] = -spike
    return pd.DataFrame({"date": dates, "amount": amounts, "vendor_id": "ops", "category_id": "operations"})


def make_flows(values_in, values_out, start: str = "2023-01-01") -> pd.DataFrame:
    inflows = np.asarray(values_in, dtype=float)
    outflows = np.asarray(values_out, dtype=float)
    return pd.DataFrame({
        "month": pd.date_range(start, periods=len(inflows), freq="MS"),
        "inflows": inflows,
        "outflows": outflows,
        "net_cash_flow": inflows - outflows,
    })


class FailingSource(TransactionSource):
    def get_transactions(self, organization_id, *, start=None, end=None):
        raise RuntimeError("ledger unavailable")


class RecordingAnomalyStore(AnomalyStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.baselines: List[tuple] = []
        self.events: List[tuple] = []

    def upsert_baseline(self, organization_id, metric_name, detector, baseline, *, window_days, sensitivity_multiplier):
        if self.fail:
            raise RuntimeError("store down")
        self.baselines.append((organization_id, metric_name, detector, baseline, window_days, sensitivity_multiplier))

    def create_event(self, organization_id, anomaly):
        if self.fail:
            raise RuntimeError("store down")
        self.events.append((organization_id, anomaly))


class RecordingRunStore(ScenarioRunStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records: List[Dict[str, Any]] = []

    def create_scenario_run(self, record):
        if self.fail:
            raise RuntimeError("store down")
        self.records.append(record)
        return {"id": len(self.records), **record}


@pytest.fixture
def as_of() -> pd.Timestamp:
    return AS_OF


@pytest.fixture
def ledger_frame() -> pd.DataFrame:
    return make_ledger()


@pytest.fixture
def ledger(ledger_frame) -> InMemoryLedger:
    return InMemoryLedger({ORG: ledger_frame})


@pytest.fixture
def monthly_flows() -> pd.DataFrame:
    rng = np.random.default_rng(3)
    months = 18
    inflows = 50_000 + 1_000 * np.arange(months) + rng.normal(0, 1_500, size=months)
    outflows = 45_000 + rng.normal(0, 1_000, size=months)
    return make_flows(inflows, outflows)
