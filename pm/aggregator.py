"""
Aggregate N simulated cash paths into decision-ready distribution summaries.

Instead of: "cash in 12 months = $1.2M" (one number, no context)
The reader gets: "P10 = $0.4M, P50 = $1.1M, P90 = $1.9M, 78% of paths still solvent"

The reduction depends only on the (n_simulations x months) matrix, so it is
identical however the paths were produced (sequentially or on a pool).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from core.utils import round_currency

BAND_PERCENTILES: Tuple[float, ...] = (10.0, 50.0, 90.0)


@dataclass
class MonteCarloResult:
    """
    simulations:             (n_simulations, months) ending-cash matrix
    percentiles:             month, p10, p50, p90 (full precision)
    probability_of_survival: fraction of paths with cash > 0, per month
    expected_runway:         mean first month index with cash <= 0 (months when never)
    runway_distribution:     [(runway_months, probability)], ascending, non-zero only
    """
    simulations: np.ndarray
    percentiles: pd.DataFrame
    probability_of_survival: np.ndarray
    expected_runway: float
    runway_distribution: List[Tuple[int, float]] = field(default_factory=list)

    @property
    def n_simulations(self) -> int:
        return int(self.simulations.shape[0])

    @property
    def final_survival(self) -> float:
        return float(self.probability_of_survival[-1]) if self.probability_of_survival.size else 0.0

    def to_dataframe(self) -> pd.DataFrame:
        """Percentile bands and survival per month, currency rounded."""
        df = self.percentiles.copy()
        for col in ("p10", "p50", "p90"):
            df[col] = round_currency(df[col].to_numpy())
        df["probability_of_survival"] = self.probability_of_survival
        return df

    def to_dict(self) -> Dict:
        return {
            "percentiles": self.to_dataframe().to_dict(orient="records"),
            "probability_of_survival": self.probability_of_survival.tolist(),
            "expected_runway": self.expected_runway,
            "runway_distribution": [
                {"months": m, "probability": p} for m, p in self.runway_distribution
            ],
            "n_simulations": self.n_simulations,
        }


def first_crossing(paths: np.ndarray) -> np.ndarray:
    """Per path: index of the first month with cash <= 0, or the path length."""
    hit = paths <= 0
    months = paths.shape[1]
    return np.where(hit.any(axis=1), hit.argmax(axis=1), months)


def aggregate_simulations(paths: np.ndarray, months: Sequence[str]) -> MonteCarloResult:
    """Reduce an (n_simulations, months) cash matrix."""
    paths = np.nan_to_num(np.asarray(paths, dtype=float), nan=0.0, posinf=0.0, neginf=0.0)
    if paths.ndim != 2 or paths.shape[1] != len(months):
        raise ValueError("paths must be (n_simulations, len(months)).")

    n_sims, horizon = paths.shape
    if n_sims == 0 or horizon == 0:
        empty = pd.DataFrame({"month": list(months), "p10": 0.0, "p50": 0.0, "p90": 0.0})
        return MonteCarloResult(paths, empty, np.zeros(horizon), float(horizon), [])

    bands = np.percentile(paths, BAND_PERCENTILES, axis=0, method="linear")
    percentiles = pd.DataFrame({
        "month": list(months),
        "p10": bands[0],
        "p50": bands[1],
        "p90": bands[2],
    })

    survival = (paths > 0).sum(axis=0) / n_sims
    runways = first_crossing(paths)
    counts = np.bincount(runways, minlength=horizon + 1)
    distribution = [(int(m), float(c / n_sims)) for m, c in enumerate(counts) if c > 0]

    return MonteCarloResult(
        simulations=paths,
        percentiles=percentiles,
        probability_of_survival=survival.astype(float),
        expected_runway=float(runways.mean()),
        runway_distribution=distribution,
    )
