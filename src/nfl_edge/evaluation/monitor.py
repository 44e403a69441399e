"""
Drift checks between a reference window (usually the training OOF rows)
and a current window (recent test or scored games).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import pandas as pd

from nfl_edge.evaluation.metrics import (
    CALIBRATION_SLOPE_RANGE,
    brier_score,
    calibration_slope_intercept,
    log_loss,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorThresholds:
    brier_delta: float = 0.02
    logloss_delta: float = 0.05
    psi: float = 0.25
    slope_range: tuple[float, float] = CALIBRATION_SLOPE_RANGE


@dataclass(frozen=True)
class DriftReport:
    metrics: pd.DataFrame
    psi: pd.DataFrame
    alerts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.alerts


def psi(expected, actual, n_bins: int = 10, eps: float = 1e-6) -> float:
    """
    Population stability index of ``actual`` against ``expected``.

    Bin edges are the quantiles of the expected sample; the outer edges are
    opened to ±inf so every actual value lands in a bin. NaNs are ignored.
    """
    e = np.asarray(expected, dtype=float)
    a = np.asarray(actual, dtype=float)
    e = e[~np.isnan(e)]
    a = a[~np.isnan(a)]
    if len(e) == 0 or len(a) == 0:
        return float("nan")

    cuts = np.unique(np.quantile(e, np.linspace(0.0, 1.0, n_bins + 1)))
    if len(cuts) < 2:
        # constant reference: compare share equal to that value
        same_e = 1.0
        same_a = float(np.mean(a == cuts[0]))
        pe = np.clip(np.array([same_e, 1.0 - same_e]), eps, None)
        pa = np.clip(np.array([same_a, 1.0 - same_a]), eps, None)
        return float(np.sum((pa - pe) * np.log(pa / pe)))

    cuts[0], cuts[-1] = -np.inf, np.inf
    e_counts, _ = np.histogram(e, bins=cuts)
    a_counts, _ = np.histogram(a, bins=cuts)
    pe = np.clip(e_counts / e_counts.sum(), eps, None)
    pa = np.clip(a_counts / a_counts.sum(), eps, None)
    return float(np.sum((pa - pe) * np.log(pa / pe)))


def _window_metrics(frame: pd.DataFrame, prob_col: str) -> dict:
    y = frame["home_win"].to_numpy()
    p = frame[prob_col].to_numpy()
    slope, intercept = calibration_slope_intercept(y, p)
    return {
        "n": len(frame),
        "logloss": log_loss(y, p),
        "brier": brier_score(y, p),
        "calib_slope": slope,
        "calib_intercept": intercept,
    }


def check_drift(
    reference: pd.DataFrame,
    current: pd.DataFrame,
    features: Sequence[str],
    thresholds: MonitorThresholds | None = None,
    prob_col: str = "prob_model_oof",
    n_bins: int = 10,
) -> DriftReport:
    """
    Compare predictive quality and feature distributions across two windows.

    Both frames need ``home_win``, ``prob_col`` and the listed features.
    Alerts are raised when Brier or log loss worsen by more than the
    configured delta, when any feature PSI exceeds the threshold, or when
    the current calibration slope leaves the allowed range.
    """
    if thresholds is None:
        thresholds = MonitorThresholds()

    ref = _window_metrics(reference, prob_col)
    cur = _window_metrics(current, prob_col)
    metrics = pd.DataFrame([{"window": "reference", **ref}, {"window": "current", **cur}])

    psi_rows = [
        {"feature": f, "psi": psi(reference[f], current[f], n_bins=n_bins)}
        for f in features
    ]
    psi_table = pd.DataFrame(psi_rows, columns=["feature", "psi"])

    alerts: list[str] = []
    brier_delta = cur["brier"] - ref["brier"]
    if brier_delta > thresholds.brier_delta:
        alerts.append(f"Brier worsened by {brier_delta:.4f} (> {thresholds.brier_delta})")
    logloss_delta = cur["logloss"] - ref["logloss"]
    if logloss_delta > thresholds.logloss_delta:
        alerts.append(f"Log loss worsened by {logloss_delta:.4f} (> {thresholds.logloss_delta})")
    for row in psi_rows:
        if row["psi"] > thresholds.psi:
            alerts.append(f"PSI {row['psi']:.3f} on {row['feature']} (> {thresholds.psi})")
    lo, hi = thresholds.slope_range
    if not np.isnan(cur["calib_slope"]) and not (lo <= cur["calib_slope"] <= hi):
        alerts.append(f"Calibration slope {cur['calib_slope']:.3f} outside [{lo}, {hi}]")

    for alert in alerts:
        logger.warning("Drift alert: %s", alert)
    if not alerts:
        logger.info("No drift alerts (%d reference vs %d current rows)", ref["n"], cur["n"])

    return DriftReport(metrics=metrics, psi=psi_table, alerts=alerts)
