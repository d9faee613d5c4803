from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

SEVERITIES = ("low", "medium", "high", "critical")


@dataclass(frozen=True)
class StatisticalBaseline:
    """
    Summary statistics of a value window plus the anomaly thresholds derived from it.

    A baseline with sample_size == 0 is the empty baseline: every field is 0 and
    detectors treat it as "no history" (no anomaly).
    """
    mean: float = 0.0
    std_dev: float = 0.0
    median: float = 0.0
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0
    upper_threshold: float = 0.0
    lower_threshold: float = 0.0
    sample_size: int = 0

    @property
    def is_empty(self) -> bool:
        return self.sample_size == 0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class AnomalyResult:
    is_anomaly: bool
    severity: str
    deviation_score: float
    observed_value: float
    expected_value: float
    title: str
    description: str
    detector: str
    metric_name: str
    context_payload: Dict[str, Any] = field(default_factory=dict)

    def with_context(self, **extra: Any) -> "AnomalyResult":
        payload = dict(self.context_payload)
        payload.update(extra)
        return AnomalyResult(**{**asdict(self), "context_payload": payload})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
