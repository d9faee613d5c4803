"""
Anomaly detection — statistical baselines and z-score / IQR / moving-average /
weekday-seasonal detectors over spend series.
"""

from .models import AnomalyResult, StatisticalBaseline, SEVERITIES
from .detector import AnomalyDetector, create_anomaly_detector

__all__ = [
    "AnomalyResult",
    "StatisticalBaseline",
    "SEVERITIES",
    "AnomalyDetector",
    "create_anomaly_detector",
]
