"""
Cash-flow forecast model.

Trains on zero-filled monthly inflow/outflow history and projects net cash
flow forward with a fixed-weight ensemble of three estimators:

  1) Holt-Winters rolling projection            (needs >= 12 months and a fitted smoother)
  2) linear trend x seasonal index
  3) damped 3-month moving average reverting to the historical mean

Ensemble weights by data quality:
  - Holt-Winters blend   0.5 HW / 0.3 trend-seasonal / 0.2 damped MA
  - trend blend          0.6 trend-seasonal / 0.4 damped MA      (net trend R² > 0.5)
  - mean-reverting blend 0.7 damped MA / 0.3 long-run average

When both inflow and outflow trends have R² > 0.5 the net figure is
recomputed from the component projections.

Public entry points never raise on missing models or thin history; they
return None or an unsuccessful TrainingResult.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

from core.config import ForecastConfig
from core.ports import ModelStore, TransactionSource
from core.utils import month_key, resolve_as_of, round_currency, safe_divide
from data_prep.aggregate import aggregate_monthly_flows
from statskit import linear_regression, mean, std_dev, trailing_mean

from . import holt_winters
from .artifact import (
    MODEL_VERSION,
    MonthlyFlow,
    MovingAverages,
    SeasonalIndex,
    SmoothingParams,
    TrainedForecastModel,
    TrendParams,
)
from .store import ModelCache

logger = logging.getLogger(__name__)

# Ensemble thresholds and weights
TREND_R2_THRESHOLD = 0.5
SEASONAL_MIN_MONTHS = 12
HW_WEIGHTS = (0.5, 0.3, 0.2)
TREND_WEIGHTS = (0.6, 0.4)
MEAN_REVERT_WEIGHTS = (0.7, 0.3)
MA_DAMPING = 0.95

# Confidence interval
CI_Z = 1.96
CI_HORIZON_WIDENING = 0.1

# Trend direction band on the net cash flow slope (currency units / month)
TREND_SLOPE_BAND = 1000.0

# Heuristic runway: cumulative forecast cash below -3x average monthly inflow
RUNWAY_INFLOW_MULTIPLE = 3.0

# Deviation classification (percent of expected net)
ON_TRACK_PCT = 10.0
SIGNIFICANT_PCT = 50.0

CONFIDENCE_FULL_DATA_MONTHS = 24
RECENT_MONTHS_KEPT = 12


@dataclass(frozen=True)
class TrainingResult:
    success: bool
    data_months: int
    avg_net_cash_flow: float
    trend_direction: str
    persisted: bool = False


@dataclass(frozen=True)
class MonthlyForecast:
    month: str
    inflows: float
    outflows: float
    net_cash_flow: float
    confidence_low: float
    confidence_high: float
    method: str


@dataclass(frozen=True)
class ForecastSummary:
    avg_projected_inflows: float
    avg_projected_outflows: float
    avg_projected_net_cash_flow: float
    trend_direction: str
    seasonal_strength: float


@dataclass
class ForecastResult:
    forecasts: List[MonthlyForecast] = field(default_factory=list)
    model_confidence: float = 0.0
    historical_accuracy: float = 0.0
    summary: Optional[ForecastSummary] = None

    def to_dataframe(self) -> pd.DataFrame:
        """Forecast table rounded to whole currency units."""
        df = pd.DataFrame([asdict(f) for f in self.forecasts])
        if df.empty:
            return df
        for col in ("inflows", "outflows", "net_cash_flow", "confidence_low", "confidence_high"):
            df[col] = round_currency(df[col].to_numpy())
        return df

    def to_dict(self) -> Dict[str, Any]:
        return {
            "forecasts": self.to_dataframe().to_dict(orient="records"),
            "model_confidence": self.model_confidence,
            "historical_accuracy": self.historical_accuracy,
            "summary": asdict(self.summary) if self.summary else None,
        }


@dataclass(frozen=True)
class ForecastedMetrics:
    projected_burn_rate: float
    projected_runway: int
    cash_flow_trend: str
    seasonal_peak_month: int
    seasonal_trough_month: int


@dataclass(frozen=True)
class ForecastDeviation:
    month: str
    deviation_type: str
    inflow_deviation: float
    outflow_deviation: float
    net_deviation: float
    percentage_deviation: float


def trend_direction(slope: float) -> str:
    if slope > TREND_SLOPE_BAND:
        return "increasing"
    if slope < -TREND_SLOPE_BAND:
        return "decreasing"
    return "stable"


def compute_seasonal_indices(months: pd.Series, inflows: np.ndarray, outflows: np.ndarray) -> List[SeasonalIndex]:
    """
    Per-calendar-month index = that month's average / average of the 12 monthly averages.

    Neutral (1.0) until at least 12 months of history exist, and for a flow
    with no volume; the 12 indices of each flow always average to 1.
    """
    if len(months) < SEASONAL_MIN_MONTHS:
        return [SeasonalIndex(month=m) for m in range(1, 13)]

    cal = pd.DatetimeIndex(months).month.to_numpy()
    index_sets = []
    for series in (inflows, outflows):
        monthly_avgs = np.array([series[cal == m].mean() if np.any(cal == m) else 0.0 for m in range(1, 13)])
        overall = monthly_avgs.mean()
        index_sets.append(monthly_avgs / overall if overall > 0 else np.ones(12))

    return [
        SeasonalIndex(month=m, inflow_index=float(index_sets[0][m - 1]), outflow_index=float(index_sets[1][m - 1]))
        for m in range(1, 13)
    ]


def _trend_params(values: np.ndarray) -> TrendParams:
    fit = linear_regression(values)
    return TrendParams(slope=fit.slope, intercept=fit.intercept, r2=fit.r2)


def build_model(organization_id: str, flows: pd.DataFrame) -> TrainedForecastModel:
    """Fit every model component over a zero-filled monthly flow frame."""
    inflows = flows["inflows"].to_numpy(dtype=float)
    outflows = flows["outflows"].to_numpy(dtype=float)
    net = flows["net_cash_flow"].to_numpy(dtype=float)
    n = len(flows)

    hw = holt_winters.fit(net)
    points = [
        MonthlyFlow(month=month_key(r.month), inflows=r.inflows, outflows=r.outflows, net_cash_flow=r.net_cash_flow)
        for r in flows.itertuples(index=False)
    ]

    return TrainedForecastModel(
        version=MODEL_VERSION,
        trained_at=datetime.now(timezone.utc),
        organization_id=organization_id,
        data_months=n,
        avg_inflows=mean(inflows),
        avg_outflows=mean(outflows),
        avg_net_cash_flow=mean(net),
        inflow_std_dev=std_dev(inflows),
        outflow_std_dev=std_dev(outflows),
        net_cash_flow_std_dev=std_dev(net),
        inflow_trend=_trend_params(inflows),
        outflow_trend=_trend_params(outflows),
        net_cash_flow_trend=_trend_params(net),
        seasonal_indices=compute_seasonal_indices(flows["month"], inflows, outflows),
        hw_params=SmoothingParams(alpha=hw.params.alpha, beta=hw.params.beta, gamma=hw.params.gamma),
        hw_fitted=hw.fitted,
        hw_error=hw.error,
        hw_level=hw.level,
        hw_trend=hw.trend,
        hw_seasonals=list(hw.seasonals),
        moving_averages=MovingAverages(
            ma3=trailing_mean(net, 3),
            ma6=trailing_mean(net, 6),
            ma12=trailing_mean(net, min(12, n)),
        ),
        last_month=points[-1],
        recent_months=points[-RECENT_MONTHS_KEPT:],
    )


def project(model: TrainedForecastModel, months: int) -> ForecastResult:
    """Pure forward projection of a trained artifact."""
    n = model.data_months
    last = pd.Period(model.last_month.month, freq="M")
    has_seasonal_data = n >= SEASONAL_MIN_MONTHS
    use_hw = has_seasonal_data and model.hw_fitted
    net_r2 = model.net_cash_flow_trend.r2
    components_reliable = model.inflow_trend.r2 > TREND_R2_THRESHOLD and model.outflow_trend.r2 > TREND_R2_THRESHOLD

    hw_fit = holt_winters.HoltWintersFit(
        params=holt_winters.HoltWintersParams(model.hw_params.alpha, model.hw_params.beta, model.hw_params.gamma),
        level=model.hw_level,
        trend=model.hw_trend,
        seasonals=tuple(model.hw_seasonals),
        error=model.hw_error,
    )
    hw_path = hw_fit.project(n, months)

    forecasts: List[MonthlyForecast] = []
    for i in range(months):
        period = last + (i + 1)
        seasonal = model.seasonal_for(period.month)
        x = n + i

        trend_value = model.net_cash_flow_trend.value_at(x)
        trend_seasonal = trend_value * ((seasonal.inflow_index + seasonal.outflow_index) / 2)

        damp = MA_DAMPING ** i
        ma_forecast = model.moving_averages.ma3 * damp + model.avg_net_cash_flow * (1 - damp)

        if use_hw:
            w_hw, w_ts, w_ma = HW_WEIGHTS
            net = float(hw_path[i]) * w_hw + trend_seasonal * w_ts + ma_forecast * w_ma
            method = "holt_winters"
        elif net_r2 > TREND_R2_THRESHOLD:
            w_ts, w_ma = TREND_WEIGHTS
            net = trend_seasonal * w_ts + ma_forecast * w_ma
            method = "trend_seasonal"
        else:
            w_ma, w_avg = MEAN_REVERT_WEIGHTS
            net = ma_forecast * w_ma + model.avg_net_cash_flow * w_avg
            method = "moving_average"

        inflows = max(0.0, model.inflow_trend.value_at(x) * seasonal.inflow_index)
        outflows = max(0.0, model.outflow_trend.value_at(x) * seasonal.outflow_index)
        if components_reliable:
            net = inflows - outflows

        if not np.isfinite(net):
            net = model.avg_net_cash_flow
        half_width = model.net_cash_flow_std_dev * CI_Z * (1 + CI_HORIZON_WIDENING * i)

        forecasts.append(MonthlyForecast(
            month=period.strftime("%Y-%m"),
            inflows=inflows,
            outflows=outflows,
            net_cash_flow=net,
            confidence_low=net - half_width,
            confidence_high=net + half_width,
            method=method,
        ))

    has_stable_data = model.net_cash_flow_std_dev < abs(model.avg_net_cash_flow) * 2
    model_confidence = min(
        1.0,
        0.3 * min(1.0, n / CONFIDENCE_FULL_DATA_MONTHS)
        + 0.3 * net_r2
        + 0.2 * (1.0 if has_stable_data else 0.5)
        + 0.2 * (1.0 if has_seasonal_data else 0.5),
    )

    summary = ForecastSummary(
        avg_projected_inflows=mean([f.inflows for f in forecasts]),
        avg_projected_outflows=mean([f.outflows for f in forecasts]),
        avg_projected_net_cash_flow=mean([f.net_cash_flow for f in forecasts]),
        trend_direction=trend_direction(model.net_cash_flow_trend.slope),
        seasonal_strength=min(1.0, std_dev([s.inflow_index for s in model.seasonal_indices])),
    )
    return ForecastResult(
        forecasts=forecasts,
        model_confidence=model_confidence,
        historical_accuracy=0.7 + 0.2 * net_r2,
        summary=summary,
    )


class CashFlowForecastModel:
    """
    Per-organization train/forecast facade.

    States: untrained (no artifact) -> trained; re-training replaces the
    artifact wholesale through the ModelCache.
    """

    def __init__(
        self,
        organization_id: str,
        source: Optional[TransactionSource] = None,
        *,
        cache: Optional[ModelCache] = None,
        store: Optional[ModelStore] = None,
        config: Optional[ForecastConfig] = None,
    ):
        self.organization_id = organization_id
        self.source = source
        self.config = config or ForecastConfig()
        self.cache = cache or ModelCache(store, max_model_age_days=self.config.max_model_age_days)

    @property
    def model(self) -> Optional[TrainedForecastModel]:
        """Copy of the organization's current artifact, read through the cache."""
        return self.cache.get(self.organization_id)

    def load_model(self) -> bool:
        model = self.model
        if model is not None:
            logger.info("Loaded forecast model for %s trained on %d months", self.organization_id, model.data_months)
        return model is not None

    def train(self, months_back: Optional[int] = None) -> TrainingResult:
        """
        Train over the last `months_back` months of ledger history.

        Needs at least `min_transactions` transactions and `min_months`
        zero-filled months (from the first active month to the as-of month).
        """
        if self.source is None:
            raise ValueError("train requires a TransactionSource.")
        months_back = months_back or self.config.months_back
        as_of = resolve_as_of(self.config.as_of_date)
        start = pd.Timestamp(as_of.to_pydatetime() - relativedelta(months=months_back))
        end = as_of + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)

        logger.info("Training forecast model for %s over %d months", self.organization_id, months_back)
        try:
            tx = self.source.get_transactions(self.organization_id, start=start, end=end)
        except Exception:
            logger.exception("Could not read transactions for %s", self.organization_id)
            return TrainingResult(False, 0, 0.0, "unknown")

        if len(tx) < self.config.min_transactions:
            observed = aggregate_monthly_flows(tx, zero_fill=False)
            logger.warning(
                "Not enough transactions for %s (%d, need %d)",
                self.organization_id, len(tx), self.config.min_transactions,
            )
            return TrainingResult(False, len(observed), 0.0, "unknown")

        first_active = pd.to_datetime(tx["date"]).min()
        flows = aggregate_monthly_flows(tx, start=first_active, end=end, zero_fill=True)
        if len(flows) < self.config.min_months:
            logger.warning(
                "Not enough months of data for %s (%d, need %d)",
                self.organization_id, len(flows), self.config.min_months,
            )
            return TrainingResult(False, len(flows), 0.0, "unknown")

        model = build_model(self.organization_id, flows)
        with self.cache.lock_for(self.organization_id):
            self.cache.invalidate(self.organization_id)
            persisted = self.cache.replace(model)

        direction = trend_direction(model.net_cash_flow_trend.slope)
        logger.info(
            "Trained forecast model for %s: %d months, trend=%s, avg_net=%.0f",
            self.organization_id, model.data_months, direction, model.avg_net_cash_flow,
        )
        return TrainingResult(True, model.data_months, model.avg_net_cash_flow, direction, persisted)

    def forecast(self, months: Optional[int] = None) -> Optional[ForecastResult]:
        model = self.model
        if model is None:
            logger.info("No forecast model available for %s", self.organization_id)
            return None
        return project(model, months or self.config.forecast_months)

    def get_forecasted_metrics(self, months: Optional[int] = None) -> Optional[ForecastedMetrics]:
        months = months or self.config.forecast_months
        model = self.model
        if model is None:
            return None
        result = project(model, months)

        nets = np.array([f.net_cash_flow for f in result.forecasts], dtype=float)
        burns = np.abs(nets[nets < 0])
        burn_rate = float(burns.mean()) if burns.size else 0.0

        runway = months
        threshold = -model.avg_inflows * RUNWAY_INFLOW_MULTIPLE
        cumulative = np.cumsum(nets)
        below = np.flatnonzero(cumulative < threshold)
        if below.size:
            runway = int(below[0]) + 1

        half = months // 2
        first_avg, second_avg = mean(nets[:half]), mean(nets[half:])
        if second_avg > first_avg * 1.1:
            cash_flow_trend = "improving"
        elif second_avg < first_avg * 0.9:
            cash_flow_trend = "declining"
        else:
            cash_flow_trend = "stable"

        net_index = np.array([s.inflow_index - s.outflow_index for s in model.seasonal_indices])
        return ForecastedMetrics(
            projected_burn_rate=burn_rate,
            projected_runway=runway,
            cash_flow_trend=cash_flow_trend,
            seasonal_peak_month=int(np.argmax(net_index)) + 1,
            seasonal_trough_month=int(np.argmin(net_index)) + 1,
        )

    def detect_forecast_deviation(
        self,
        actual_inflows: float,
        actual_outflows: float,
        month: Optional[str] = None,
    ) -> Optional[ForecastDeviation]:
        """
        Compare realized flows for `month` (YYYY-MM, default: first forecast
        month) with the forecast for that month.
        """
        result = self.forecast(self.config.forecast_months)
        if result is None or not result.forecasts:
            return None
        if month is None:
            expected = result.forecasts[0]
        else:
            matches = [f for f in result.forecasts if f.month == month_key(month)]
            if not matches:
                return None
            expected = matches[0]

        actual_net = actual_inflows - actual_outflows
        net_deviation = actual_net - expected.net_cash_flow
        pct = safe_divide(net_deviation, abs(expected.net_cash_flow or 1.0)) * 100

        if abs(pct) < ON_TRACK_PCT:
            kind = "on_track"
        elif abs(pct) > SIGNIFICANT_PCT:
            kind = "significant_deviation"
        elif net_deviation > 0:
            kind = "above_forecast"
        else:
            kind = "below_forecast"

        return ForecastDeviation(
            month=expected.month,
            deviation_type=kind,
            inflow_deviation=actual_inflows - expected.inflows,
            outflow_deviation=actual_outflows - expected.outflows,
            net_deviation=net_deviation,
            percentage_deviation=pct,
        )

    def get_model_stats(self) -> Optional[Dict[str, Any]]:
        model = self.model
        if model is None:
            return None
        return {
            "trained": True,
            "trained_at": model.trained_at.isoformat(),
            "version": model.version,
            "data_months": model.data_months,
            "avg_net_cash_flow": model.avg_net_cash_flow,
            "trend_slope": model.net_cash_flow_trend.slope,
            "seasonal_strength": std_dev([s.inflow_index for s in model.seasonal_indices]),
            "hw_params": model.hw_params.model_dump() if model.hw_fitted else None,
        }


def create_cash_flow_forecast_model(organization_id: str, source: Optional[TransactionSource] = None, **kwargs) -> CashFlowForecastModel:
    return CashFlowForecastModel(organization_id, source, **kwargs)
