"""
Collaborator ports — the storage and ledger boundaries the analytics core talks to.

The numeric routines never touch these directly; orchestration methods
(training, anomaly sweeps, scenario runs) call them and catch their failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

import pandas as pd

if TYPE_CHECKING:
    from anomaly.models import AnomalyResult, StatisticalBaseline
    from models.artifact import TrainedForecastModel


class TransactionSource(ABC):
    """Per-organization ledger reader."""

    @abstractmethod
    def get_transactions(
        self,
        organization_id: str,
        *,
        start: Optional[pd.Timestamp] = None,
        end: Optional[pd.Timestamp] = None,
    ) -> pd.DataFrame:
        """
        Return the organization's transactions dated within [start, end].

        The frame carries at least the `date` and `amount` columns
        (see core.schema.TRANSACTION_COLUMNS).
        """
        ...


class AnomalyStore(ABC):
    """Persists baselines and anomaly events for the alerting layer."""

    @abstractmethod
    def upsert_baseline(
        self,
        organization_id: str,
        metric_name: str,
        detector: str,
        baseline: "StatisticalBaseline",
        *,
        window_days: int,
        sensitivity_multiplier: float,
    ) -> None:
        ...

    @abstractmethod
    def create_event(self, organization_id: str, anomaly: "AnomalyResult") -> None:
        ...


class ScenarioRunStore(ABC):
    """Persists scenario runs for the reporting layer."""

    @abstractmethod
    def create_scenario_run(self, record: Dict[str, Any]) -> Any:
        """Store a scenario run record and return the stored row (or its id)."""
        ...


class ModelStore(ABC):
    """Load/store collaborator for trained forecast model artifacts."""

    @abstractmethod
    def load(self, organization_id: str) -> Optional["TrainedForecastModel"]:
        ...

    @abstractmethod
    def save(self, model: "TrainedForecastModel") -> None:
        ...

    @abstractmethod
    def delete(self, organization_id: str) -> bool:
        ...
