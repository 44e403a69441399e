from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from sklearn.linear_model import LogisticRegression

logger = logging.getLogger(__name__)

EPS = 1e-15
CALIBRATION_SLOPE_RANGE = (0.8, 1.2)


def _clamp(p, eps: float = EPS) -> np.ndarray:
    return np.clip(np.asarray(p, dtype=float), eps, 1.0 - eps)


def logloss_per_row(y, p, eps: float = EPS) -> np.ndarray:
    """
    -(y*ln(p) + (1-y)*ln(1-p)) per row, with p clamped to [eps, 1-eps].

    logloss_per_row([1], [0.0]) is about 34.54, never inf.
    """
    y = np.asarray(y, dtype=float)
    p = _clamp(p, eps)
    return -(y * np.log(p) + (1.0 - y) * np.log(1.0 - p))


def log_loss(y, p, eps: float = EPS) -> float:
    """Mean binary log loss."""
    rows = logloss_per_row(y, p, eps)
    return float(rows.mean()) if len(rows) else float("nan")


def brier_score(y, p) -> float:
    y = np.asarray(y, dtype=float)
    p = np.asarray(p, dtype=float)
    return float(np.mean((y - p) ** 2)) if len(y) else float("nan")


def logit(p, eps: float = EPS) -> np.ndarray:
    p = _clamp(p, eps)
    return np.log(p / (1.0 - p))


def calibration_slope_intercept(y, p) -> tuple[float, float]:
    """
    Logistic regression of the outcome on logit(p).

    A perfectly calibrated forecast has slope 1 and intercept 0. Returns
    (nan, nan) when the outcome has a single class or fewer than two rows.
    """
    y = np.asarray(y, dtype=int)
    if len(y) < 2 or len(np.unique(y)) < 2:
        return float("nan"), float("nan")
    x = logit(p).reshape(-1, 1)
    glm = LogisticRegression(C=1e6, max_iter=1000)
    glm.fit(x, y)
    return float(glm.coef_[0][0]), float(glm.intercept_[0])


def is_miscalibrated(slope: float) -> bool:
    """True when the slope is outside [0.8, 1.2]. NaN slopes are not flagged."""
    lo, hi = CALIBRATION_SLOPE_RANGE
    if np.isnan(slope):
        return False
    return not (lo <= slope <= hi)


def reliability_curve(y, p, n_bins: int = 10) -> pd.DataFrame:
    """
    Mean predicted probability vs observed frequency in equal-width bins.

    Returns columns bin (1..n_bins), predicted_prob, observed_freq, count.
    Empty bins are omitted.
    """
    df = pd.DataFrame({"y": np.asarray(y, dtype=float), "p": np.asarray(p, dtype=float)})
    edges = np.linspace(0.0, 1.0, n_bins + 1)
    df["bin"] = pd.cut(df["p"], bins=edges, include_lowest=True, labels=False) + 1
    out = (
        df.groupby("bin")
        .agg(predicted_prob=("p", "mean"), observed_freq=("y", "mean"), count=("y", "size"))
        .reset_index()
    )
    out["bin"] = out["bin"].astype(int)
    return out


def source_metrics(y, p) -> dict[str, float]:
    """log loss, Brier and calibration for one probability source."""
    slope, intercept = calibration_slope_intercept(y, p)
    return {
        "logloss": log_loss(y, p),
        "brier": brier_score(y, p),
        "calib_slope": slope,
        "calib_intercept": intercept,
        "miscalibrated": is_miscalibrated(slope),
    }


def compare_sources(y, p_model, p_book) -> pd.DataFrame:
    """Overall model vs market table, one row per source."""
    rows = [
        {"source": "model", **source_metrics(y, p_model)},
        {"source": "market", **source_metrics(y, p_book)},
    ]
    return pd.DataFrame(rows)
