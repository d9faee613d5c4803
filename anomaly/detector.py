"""
Statistical anomaly detection over spend series.

Four detectors share one sensitivity multiplier k (a z-score threshold in σ units):
  - z-score against a window baseline               (|z| >= k)
  - IQR fence distance against the same baseline    (score >= 1.5)
  - trailing moving-average deviation               (|dev| >= k)
  - same-weekday baseline (seasonal)                (|z| >= k, needs >= 4 samples)

Detection is side-effect free. Persistence of baselines/events goes through an
injected AnomalyStore; ledger reads through an injected TransactionSource.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from core.config import AnomalyConfig
from core.ports import AnomalyStore, TransactionSource
from core.utils import format_currency, resolve_as_of
from data_prep.aggregate import DAY_NAMES, aggregate_daily_spend, monthly_spend_by_key
from statskit import as_array, iqr_score, median, std_dev, z_score

from .models import AnomalyResult, StatisticalBaseline

logger = logging.getLogger(__name__)

ZSCORE_SEVERITY_TIERS: Tuple[Tuple[float, str], ...] = ((4.0, "critical"), (3.0, "high"), (2.5, "medium"))
IQR_SEVERITY_TIERS: Tuple[Tuple[float, str], ...] = ((3.0, "critical"), (2.5, "high"), (2.0, "medium"))

IQR_FENCE = 1.5
MIN_SEASONAL_SAMPLES = 4
DAILY_SPEND_METRIC = "Daily spend"


def _tiered_severity(score: float, tiers: Tuple[Tuple[float, str], ...]) -> str:
    for cutoff, label in tiers:
        if score >= cutoff:
            return label
    return "low"


class AnomalyDetector:
    """
    Per-organization anomaly detector.

    Usage:
        detector = AnomalyDetector("org-1", source=ledger)
        anomalies = detector.analyze_transaction_anomalies(days_back=30)
    """

    def __init__(
        self,
        organization_id: str,
        sensitivity_multiplier: Optional[float] = None,
        *,
        source: Optional[TransactionSource] = None,
        store: Optional[AnomalyStore] = None,
        config: Optional[AnomalyConfig] = None,
        category_mapping: Optional[Mapping[str, str]] = None,
    ):
        self.organization_id = organization_id
        self.config = config or AnomalyConfig()
        k = self.config.sensitivity_multiplier if sensitivity_multiplier is None else float(sensitivity_multiplier)
        if not np.isfinite(k) or k <= 0:
            raise ValueError("sensitivity_multiplier must be a positive number.")
        self.sensitivity_multiplier = k
        self.source = source
        self.store = store
        # category_id -> mapped account; enables chart-of-accounts grouping
        self.category_mapping = dict(category_mapping) if category_mapping else None

    # ------------------------------------------------------------------
    # Scores and baselines
    # ------------------------------------------------------------------
    def compute_z_score(self, value: float, mean: float, std_dev: float) -> float:
        return z_score(value, mean, std_dev)

    def compute_iqr_score(self, value: float, q1: float, q3: float, iqr: float) -> float:
        return iqr_score(value, q1, q3, iqr)

    def compute_statistical_baseline(self, values: Sequence[float]) -> StatisticalBaseline:
        """
        Mean, population σ, median, quartiles and thresholds of a sample.

        Quartiles are order statistics at floor(n/4) and floor(3n/4). Thresholds
        take the wider of the z-score band (mean ± k·σ) and the IQR fence
        (Q1 - 1.5·IQR, Q3 + 1.5·IQR).
        """
        arr = as_array(values)
        n = arr.size
        if n == 0:
            return StatisticalBaseline()

        ordered = np.sort(arr)
        mu = float(arr.mean())
        sigma = std_dev(arr)
        q1 = float(ordered[int(np.floor(n * 0.25))])
        q3 = float(ordered[int(np.floor(n * 0.75))])
        iqr = q3 - q1
        k = self.sensitivity_multiplier

        return StatisticalBaseline(
            mean=mu,
            std_dev=sigma,
            median=median(arr),
            q1=q1,
            q3=q3,
            iqr=iqr,
            upper_threshold=max(mu + k * sigma, q3 + IQR_FENCE * iqr),
            lower_threshold=min(mu - k * sigma, q1 - IQR_FENCE * iqr),
            sample_size=n,
        )

    # ------------------------------------------------------------------
    # Detectors
    # ------------------------------------------------------------------
    def detect_zscore_anomaly(
        self,
        value: float,
        baseline: StatisticalBaseline,
        metric_name: str,
    ) -> Optional[AnomalyResult]:
        if baseline.is_empty:
            return None
        z = self.compute_z_score(value, baseline.mean, baseline.std_dev)
        abs_z = abs(z)
        if abs_z < self.sensitivity_multiplier:
            return None

        direction = "above" if z > 0 else "below"
        return AnomalyResult(
            is_anomaly=True,
            severity=_tiered_severity(abs_z, ZSCORE_SEVERITY_TIERS),
            deviation_score=z,
            observed_value=float(value),
            expected_value=baseline.mean,
            title=f"Unusual {metric_name} detected",
            description=(
                f"{metric_name} of {format_currency(value)} is {abs_z:.1f} standard deviations "
                f"{direction} the expected value of {format_currency(baseline.mean)}."
            ),
            detector="zscore",
            metric_name=metric_name,
            context_payload={
                "z_score": z,
                "mean": baseline.mean,
                "std_dev": baseline.std_dev,
                "sample_size": baseline.sample_size,
            },
        )

    def detect_iqr_anomaly(
        self,
        value: float,
        baseline: StatisticalBaseline,
        metric_name: str,
    ) -> Optional[AnomalyResult]:
        if baseline.is_empty:
            return None
        score = self.compute_iqr_score(value, baseline.q1, baseline.q3, baseline.iqr)
        if score < IQR_FENCE:
            return None

        direction = "above" if value > baseline.median else "below"
        return AnomalyResult(
            is_anomaly=True,
            severity=_tiered_severity(score, IQR_SEVERITY_TIERS),
            deviation_score=score,
            observed_value=float(value),
            expected_value=baseline.median,
            title=f"Outlier {metric_name} detected",
            description=(
                f"{metric_name} of {format_currency(value)} is {score:.1f}x IQR {direction} the normal range "
                f"({format_currency(baseline.q1)} - {format_currency(baseline.q3)})."
            ),
            detector="iqr",
            metric_name=metric_name,
            context_payload={
                "iqr_score": score,
                "q1": baseline.q1,
                "q3": baseline.q3,
                "iqr": baseline.iqr,
                "median": baseline.median,
            },
        )

    def detect_moving_average_anomaly(
        self,
        current_value: float,
        historical_values: Sequence[float],
        metric_name: str,
        window_size: Optional[int] = None,
    ) -> Optional[AnomalyResult]:
        window = window_size or self.config.moving_average_window
        history = as_array(historical_values)
        if history.size < window:
            return None

        recent = history[-window:]
        moving_avg = float(recent.mean())
        moving_std = float(recent.std(ddof=0))
        deviation = (current_value - moving_avg) / max(moving_std, 1.0)
        abs_dev = abs(deviation)
        if abs_dev < self.sensitivity_multiplier:
            return None

        direction = "above" if current_value > moving_avg else "below"
        return AnomalyResult(
            is_anomaly=True,
            severity=_tiered_severity(abs_dev, ZSCORE_SEVERITY_TIERS),
            deviation_score=float(deviation),
            observed_value=float(current_value),
            expected_value=moving_avg,
            title=f"{metric_name} trend deviation",
            description=(
                f"{metric_name} of {format_currency(current_value)} deviates {abs_dev:.1f}σ {direction} "
                f"the {window}-day moving average of {format_currency(moving_avg)}."
            ),
            detector="moving_average",
            metric_name=metric_name,
            context_payload={
                "moving_average": moving_avg,
                "moving_std_dev": moving_std,
                "window_size": window,
                "recent_values": recent.tolist(),
            },
        )

    def detect_seasonal_anomaly(
        self,
        current_value: float,
        history_by_day_of_week: Mapping[int, Sequence[float]],
        day_of_week: int,
        metric_name: str,
    ) -> Optional[AnomalyResult]:
        """Compare a value to the history of the same weekday only (Sunday=0)."""
        same_day = list(history_by_day_of_week.get(day_of_week, []))
        if len(same_day) < MIN_SEASONAL_SAMPLES:
            return None

        baseline = self.compute_statistical_baseline(same_day)
        z = self.compute_z_score(current_value, baseline.mean, baseline.std_dev)
        abs_z = abs(z)
        if abs_z < self.sensitivity_multiplier:
            return None

        day_name = DAY_NAMES[day_of_week % 7]
        direction = "higher" if z > 0 else "lower"
        return AnomalyResult(
            is_anomaly=True,
            severity=_tiered_severity(abs_z, ZSCORE_SEVERITY_TIERS),
            deviation_score=z,
            observed_value=float(current_value),
            expected_value=baseline.mean,
            title=f"Unusual {metric_name} for {day_name}",
            description=(
                f"{metric_name} of {format_currency(current_value)} is {abs_z:.1f}σ {direction} than typical "
                f"for {day_name}s (avg: {format_currency(baseline.mean)})."
            ),
            detector="seasonal_decomposition",
            metric_name=metric_name,
            context_payload={
                "day_of_week": day_of_week,
                "day_name": day_name,
                "seasonal_mean": baseline.mean,
                "seasonal_std_dev": baseline.std_dev,
                "sample_size": len(same_day),
            },
        )

    # ------------------------------------------------------------------
    # Series and ledger sweeps
    # ------------------------------------------------------------------
    def detect_series_anomalies(
        self,
        series: pd.Series,
        days_back: int = 30,
        *,
        metric_name: str = DAILY_SPEND_METRIC,
    ) -> List[AnomalyResult]:
        """
        Evaluate the last `days_back` points of a series against the baseline of
        the points before them.

        Per point: z-score first, IQR only when z-score did not fire, trailing
        moving average only when neither did. Returns [] when the series has
        fewer than `min_daily_points` values.
        """
        anomalies, _ = self._scan_series(series, days_back, metric_name)
        return anomalies

    def _scan_series(
        self,
        series: pd.Series,
        days_back: int,
        metric_name: str,
    ) -> Tuple[List[AnomalyResult], Optional[StatisticalBaseline]]:
        values = as_array(series.to_numpy() if isinstance(series, pd.Series) else series)
        n = values.size
        if n < self.config.min_daily_points or days_back < 1:
            return [], None

        labels = list(series.index) if isinstance(series, pd.Series) else list(range(n))
        recent = min(days_back, n)
        baseline = self.compute_statistical_baseline(values[: n - recent])

        anomalies: List[AnomalyResult] = []
        for i in range(n - recent, n):
            value = float(values[i])
            found = self.detect_zscore_anomaly(value, baseline, metric_name)
            if found is None:
                found = self.detect_iqr_anomaly(value, baseline, metric_name)
            if found is None:
                found = self.detect_moving_average_anomaly(value, values[:i], metric_name)
            if found is not None:
                anomalies.append(found.with_context(date=_label(labels[i])))
        return anomalies, baseline

    def analyze_transaction_anomalies(
        self,
        days_back: int = 30,
        *,
        persist: bool = False,
    ) -> List[AnomalyResult]:
        """
        Sweep the organization's ledger: daily spend anomalies over the last
        `days_back` days plus vendor- and category-level monthly spend anomalies.

        Fails soft: an unreadable ledger or too little daily history yields [].
        With persist=True the daily baseline and every anomaly are saved
        through the AnomalyStore.
        """
        if self.source is None:
            raise ValueError("analyze_transaction_anomalies requires a TransactionSource.")
        if persist and self.store is None:
            raise ValueError("persist=True requires an AnomalyStore.")

        as_of = resolve_as_of(self.config.as_of_date)
        end = as_of + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
        try:
            tx = self.source.get_transactions(self.organization_id, end=end)
        except Exception:
            logger.exception("Could not read transactions for %s", self.organization_id)
            return []

        start = as_of - pd.Timedelta(days=days_back + self.config.baseline_window_days)
        daily = aggregate_daily_spend(tx, start=start, end=end)
        if len(daily) < self.config.min_daily_points:
            logger.warning(
                "Insufficient daily spend history for %s (%d days); skipping anomaly sweep",
                self.organization_id, len(daily),
            )
            return []

        anomalies, baseline = self._scan_series(daily, days_back, DAILY_SPEND_METRIC)
        anomalies.extend(self.analyze_vendor_spend_anomalies(tx))
        anomalies.extend(self.analyze_category_spend_anomalies(tx))
        logger.info("Anomaly sweep for %s found %d anomalies", self.organization_id, len(anomalies))

        if persist:
            if baseline is not None:
                self.save_anomaly_baseline(DAILY_SPEND_METRIC, baseline, "zscore")
            for anomaly in anomalies:
                self.save_anomaly_event(anomaly)
        return anomalies

    def analyze_vendor_spend_anomalies(self, tx: pd.DataFrame) -> List[AnomalyResult]:
        return self._analyze_group_spend(tx, "vendor_id", "Vendor", mapping=None)

    def analyze_category_spend_anomalies(self, tx: pd.DataFrame) -> List[AnomalyResult]:
        return self._analyze_group_spend(tx, "category_id", "Category", mapping=self.category_mapping)

    def _analyze_group_spend(
        self,
        tx: pd.DataFrame,
        key: str,
        label: str,
        *,
        mapping: Optional[Mapping[str, str]],
    ) -> List[AnomalyResult]:
        """Latest month vs prior months per group; low-severity hits are dropped."""
        anomalies: List[AnomalyResult] = []
        for group, monthly in monthly_spend_by_key(tx, key, mapping=mapping).items():
            if len(monthly) < self.config.min_group_months:
                continue
            values = monthly.to_numpy(dtype=float)
            baseline = self.compute_statistical_baseline(values[:-1])
            metric = f"{label} {group} monthly spend"
            found = self.detect_zscore_anomaly(float(values[-1]), baseline, metric)
            if found is not None and found.severity != "low":
                anomalies.append(found.with_context(**{key: group, "month": monthly.index[-1]}))
        return anomalies

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save_anomaly_baseline(self, metric_name: str, baseline: StatisticalBaseline, detector: str) -> bool:
        """Upsert a baseline snapshot; returns False (logged) when the store fails."""
        if self.store is None:
            raise ValueError("save_anomaly_baseline requires an AnomalyStore.")
        try:
            self.store.upsert_baseline(
                self.organization_id,
                metric_name,
                detector,
                baseline,
                window_days=self.config.baseline_window_days,
                sensitivity_multiplier=self.sensitivity_multiplier,
            )
        except Exception:
            logger.exception("Anomaly baseline not saved for %s (%s)", self.organization_id, metric_name)
            return False
        return True

    def save_anomaly_event(self, anomaly: AnomalyResult) -> bool:
        if self.store is None:
            raise ValueError("save_anomaly_event requires an AnomalyStore.")
        try:
            self.store.create_event(self.organization_id, anomaly)
        except Exception:
            logger.exception("Anomaly event not saved for %s (%s)", self.organization_id, anomaly.title)
            return False
        return True


def _label(value) -> str:
    if isinstance(value, pd.Timestamp):
        return value.strftime("%Y-%m-%d")
    return str(value)


def create_anomaly_detector(organization_id: str, sensitivity_multiplier: Optional[float] = None, **kwargs) -> AnomalyDetector:
    return AnomalyDetector(organization_id, sensitivity_multiplier, **kwargs)
