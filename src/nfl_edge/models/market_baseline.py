"""
Market baseline: closing spread -> P(home win).

Used as the "book" probability when no de-vigged moneyline is available.
The baseline is fit on the train partition of a TemporalSplit only; the
split is a required argument so a full-history fit cannot be written by
accident.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.isotonic import IsotonicRegression
from sklearn.linear_model import LogisticRegression

from nfl_edge.config import MARKET_CONFIG, MarketConfig
from nfl_edge.errors import (
    InsufficientData,
    NotFittedError,
    SchemaViolation,
    WarningTally,
    warn_out_of_range,
)
from nfl_edge.evaluation.splits import TemporalSplit

logger = logging.getLogger(__name__)

METHODS = ("isotonic", "binned", "logistic")


@dataclass(frozen=True)
class MarketBaselineModel:
    """
    Fitted spread -> probability mapping.

    Attributes
    ----------
    method:
        "isotonic", "binned" or "logistic".
    spreads, probs:
        Control points sorted by ascending spread. For isotonic these are the
        step thresholds, for binned the bin midpoints and empirical rates.
        Empty for logistic.
    coef, intercept:
        Logistic coefficients on spread_close (NaN for other methods).
    spread_min, spread_max:
        Spread range seen in training.
    n_train, spread_mean, spread_sd, home_win_rate:
        Training summary statistics.
    """

    method: str
    spreads: tuple[float, ...]
    probs: tuple[float, ...]
    coef: float
    intercept: float
    spread_min: float
    spread_max: float
    n_train: int
    spread_mean: float
    spread_sd: float
    home_win_rate: float


def _clean_training_rows(data: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in ("spread_close", "home_win") if c not in data.columns]
    if missing:
        raise SchemaViolation(f"Market baseline data must contain {missing}")
    clean = data.loc[data["spread_close"].notna() & data["home_win"].notna(), ["spread_close", "home_win"]]
    if clean.empty:
        raise InsufficientData("No valid training data for the market baseline after removing NAs.")
    return pd.DataFrame(
        {
            "spread_close": clean["spread_close"].astype(float).to_numpy(),
            "home_win": clean["home_win"].astype(int).to_numpy(),
        }
    )


def _fit_isotonic(clean: pd.DataFrame) -> tuple[tuple, tuple, float, float]:
    # More negative spread = home more favored, so regress on -spread to get
    # a non-decreasing relationship.
    iso = IsotonicRegression(increasing=True, y_min=0.0, y_max=1.0, out_of_bounds="clip")
    iso.fit(-clean["spread_close"].to_numpy(), clean["home_win"].to_numpy())
    neg_spread = np.asarray(iso.X_thresholds_, dtype=float)
    probs = np.asarray(iso.y_thresholds_, dtype=float)
    order = np.argsort(-neg_spread, kind="mergesort")
    return tuple(-neg_spread[order]), tuple(probs[order]), np.nan, np.nan


def _fit_binned(clean: pd.DataFrame, n_bins: int, min_bin_count: int) -> tuple[tuple, tuple, float, float]:
    if n_bins < 1:
        raise ValueError("n_bins must be >= 1")
    bins = pd.cut(clean["spread_close"], bins=n_bins, include_lowest=True)
    table = (
        clean.groupby(bins, observed=True)
        .agg(
            n=("home_win", "size"),
            home_win_rate=("home_win", "mean"),
            spread_mid=("spread_close", "mean"),
        )
        .reset_index(drop=True)
    )
    table = table[table["n"] >= min_bin_count].sort_values("spread_mid")
    if table.empty:
        raise InsufficientData(
            f"No spread bins with >= {min_bin_count} games out of {n_bins}. Try fewer bins."
        )
    logger.debug("Binned baseline kept %d of %d bins", len(table), n_bins)
    return tuple(table["spread_mid"]), tuple(table["home_win_rate"]), np.nan, np.nan


def _fit_logistic(clean: pd.DataFrame) -> tuple[tuple, tuple, float, float]:
    if clean["home_win"].nunique() < 2:
        raise InsufficientData("Logistic market baseline needs both outcomes in training data.")
    # Large C: effectively the unpenalized maximum-likelihood fit.
    glm = LogisticRegression(C=1e6, max_iter=1000)
    glm.fit(clean[["spread_close"]].to_numpy(), clean["home_win"].to_numpy())
    return (), (), float(glm.coef_[0][0]), float(glm.intercept_[0])


class MarketBaseline:
    """
    Spread -> home win probability baseline.

    Typical usage
    -------------
        baseline = MarketBaseline(method="isotonic").fit(frame, split)
        frame["prob_book"] = baseline.predict(frame["spread_close"])
    """

    def __init__(
        self,
        method: str = "isotonic",
        n_bins: int = 20,
        min_bin_count: int = 5,
    ) -> None:
        if method not in METHODS:
            raise ValueError(f"Unknown method: {method}. Use 'isotonic', 'binned', or 'logistic'")
        self.method = method
        self.n_bins = n_bins
        self.min_bin_count = min_bin_count
        self._model: MarketBaselineModel | None = None

    @classmethod
    def from_config(cls, config: MarketConfig | None = None) -> "MarketBaseline":
        if config is None:
            config = MARKET_CONFIG
        return cls(method=config.method, n_bins=config.n_bins, min_bin_count=config.min_bin_count)

    @property
    def is_fitted(self) -> bool:
        return self._model is not None

    @property
    def model(self) -> MarketBaselineModel:
        if self._model is None:
            raise NotFittedError("Market baseline has not been fit.")
        return self._model

    def fit(self, data: pd.DataFrame, split: TemporalSplit) -> "MarketBaseline":
        """Fit on ``split.train_frame(data)``; rows with NA spread/outcome are excluded."""
        if self._model is not None:
            raise RuntimeError("Market baseline is already fit; create a new one per partition.")
        if not isinstance(split, TemporalSplit):
            raise TypeError("fit() requires a TemporalSplit; fit on the train partition only.")

        clean = _clean_training_rows(split.train_frame(data))

        if self.method == "isotonic":
            spreads, probs, coef, intercept = _fit_isotonic(clean)
        elif self.method == "binned":
            spreads, probs, coef, intercept = _fit_binned(clean, self.n_bins, self.min_bin_count)
        else:
            spreads, probs, coef, intercept = _fit_logistic(clean)

        spread = clean["spread_close"]
        self._model = MarketBaselineModel(
            method=self.method,
            spreads=spreads,
            probs=probs,
            coef=coef,
            intercept=intercept,
            spread_min=float(spread.min()),
            spread_max=float(spread.max()),
            n_train=len(clean),
            spread_mean=float(spread.mean()),
            spread_sd=float(spread.std()) if len(clean) > 1 else 0.0,
            home_win_rate=float(clean["home_win"].mean()),
        )
        logger.info(
            "Market baseline (%s) fit on %d games; spread range [%.1f, %.1f]; home win rate %.3f",
            self.method,
            self._model.n_train,
            self._model.spread_min,
            self._model.spread_max,
            self._model.home_win_rate,
        )
        return self

    def predict(self, spreads, tally: WarningTally | None = None) -> np.ndarray | float:
        """
        Home win probability for each spread.

        Spreads outside the training range are clipped to the nearest
        boundary (flat extrapolation) and counted in one OutOfRangeInput
        warning. NaN spreads give NaN probabilities. A scalar spread returns
        a float.
        """
        model = self.model
        scalar = np.ndim(spreads) == 0
        s = np.atleast_1d(np.asarray(spreads, dtype=float))
        known = ~np.isnan(s)
        out_of_range = known & ((s < model.spread_min) | (s > model.spread_max))
        warn_out_of_range(
            "spread_out_of_range",
            int(out_of_range.sum()),
            f"Spreads outside training range [{model.spread_min:.1f}, {model.spread_max:.1f}] clipped",
            tally,
        )
        clipped = np.clip(s, model.spread_min, model.spread_max)

        if model.method == "isotonic":
            xp = -np.asarray(model.spreads)[::-1]
            fp = np.asarray(model.probs)[::-1]
            prob = np.interp(-clipped, xp, fp)
        elif model.method == "binned":
            mids = np.asarray(model.spreads)
            rates = np.asarray(model.probs)
            nearest = np.abs(clipped[:, None] - mids[None, :]).argmin(axis=1)
            prob = rates[nearest]
        else:
            prob = 1.0 / (1.0 + np.exp(-(model.intercept + model.coef * clipped)))

        prob = np.clip(np.asarray(prob, dtype=float), 0.0, 1.0)
        prob[~known] = np.nan
        return float(prob[0]) if scalar else prob


def fit_market_baseline(
    data: pd.DataFrame,
    split: TemporalSplit,
    config: MarketConfig | None = None,
) -> MarketBaseline:
    """Function form of ``MarketBaseline.from_config(config).fit(data, split)``."""
    return MarketBaseline.from_config(config).fit(data, split)


def market_prob(
    spreads,
    baseline: MarketBaseline,
    tally: WarningTally | None = None,
) -> np.ndarray | float:
    """Function form of ``baseline.predict``."""
    return baseline.predict(spreads, tally)
