from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from nfl_edge.config import EDGE_CONFIG
from nfl_edge.errors import InsufficientData
from nfl_edge.evaluation.edges import flag_column
from nfl_edge.evaluation.metrics import (
    brier_score,
    calibration_slope_intercept,
    compare_sources,
    is_miscalibrated,
    log_loss,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiftReport:
    """Model-vs-market comparison tables built from EdgeRecords."""

    by_decile: pd.DataFrame
    by_season: pd.DataFrame
    by_season_week: pd.DataFrame
    by_threshold: pd.DataFrame
    cumulative_gain: pd.DataFrame
    overall: pd.DataFrame


def assign_deciles(abs_edge: pd.Series, n_bins: int = 10) -> pd.Series:
    """
    Equal-population bins of |edge|, labelled D1 (lowest) .. Dn (highest).

    Ties are broken by row order so bin sizes differ by at most one.
    """
    if len(abs_edge) == 0:
        raise InsufficientData("No edges to bin.")
    n_bins = min(int(n_bins), len(abs_edge))
    ranks = abs_edge.rank(method="first")
    labels = [f"D{i}" for i in range(1, n_bins + 1)]
    return pd.qcut(ranks, q=n_bins, labels=labels)


def _bucket_stats(group: pd.DataFrame) -> dict:
    y = group["home_win"].to_numpy()
    p_model = group["prob_model_oof"].to_numpy()
    p_book = group["prob_book"].to_numpy()
    model_slope, model_intercept = calibration_slope_intercept(y, p_model)
    book_slope, book_intercept = calibration_slope_intercept(y, p_book)
    return {
        "n": len(group),
        "mean_abs_edge": group["abs_edge"].mean(),
        "mean_loss_delta": group["loss_delta"].mean(),
        "model_logloss": log_loss(y, p_model),
        "market_logloss": log_loss(y, p_book),
        "model_brier": brier_score(y, p_model),
        "market_brier": brier_score(y, p_book),
        "model_calib_slope": model_slope,
        "model_calib_intercept": model_intercept,
        "model_miscalibrated": is_miscalibrated(model_slope),
        "market_calib_slope": book_slope,
        "market_calib_intercept": book_intercept,
    }


def _grouped(edges: pd.DataFrame, keys: str | list[str]) -> pd.DataFrame:
    if isinstance(keys, str):
        keys = [keys]
    rows = [
        {**dict(zip(keys, name)), **_bucket_stats(group)}
        for name, group in edges.groupby(keys, observed=True, sort=True)
    ]
    return pd.DataFrame(rows)


def by_decile(edges: pd.DataFrame, n_bins: int = 10) -> pd.DataFrame:
    df = edges.assign(edge_decile=assign_deciles(edges["abs_edge"], n_bins))
    return _grouped(df, "edge_decile")


def by_season(edges: pd.DataFrame) -> pd.DataFrame:
    out = _grouped(edges, "season")
    extra = edges.groupby("season").agg(mean_edge=("edge", "mean"), sd_edge=("edge", "std"))
    return out.merge(extra.reset_index(), on="season", how="left")


def by_season_week(edges: pd.DataFrame) -> pd.DataFrame:
    return _grouped(edges, ["season", "week"])


def by_threshold(edges: pd.DataFrame, thresholds: Sequence[float]) -> pd.DataFrame:
    """
    For each τ: how many games are flagged and how the model did on them
    compared with the market.
    """
    rows = []
    for tau in thresholds:
        col = flag_column(tau)
        flags = edges[col] if col in edges.columns else (edges["abs_edge"] > tau).astype(int)
        flagged = edges[flags.astype(bool)]
        y = flagged["home_win"].to_numpy()
        rows.append(
            {
                "tau": float(tau),
                "n_flagged": len(flagged),
                "share_flagged": len(flagged) / len(edges) if len(edges) else np.nan,
                "mean_loss_delta": flagged["loss_delta"].mean() if len(flagged) else np.nan,
                "model_logloss": log_loss(y, flagged["prob_model_oof"]) if len(flagged) else np.nan,
                "market_logloss": log_loss(y, flagged["prob_book"]) if len(flagged) else np.nan,
            }
        )
    return pd.DataFrame(rows)


def cumulative_gain(edges: pd.DataFrame) -> pd.DataFrame:
    """
    Games ranked by |edge| descending with cumulative mean log-loss gain:
    cumulative_gain[r] = sum(loss_delta[:r]) / r.
    """
    ranked = edges.sort_values(["abs_edge", "game_id"], ascending=[False, True], kind="mergesort")
    ranked = ranked[["game_id", "abs_edge", "loss_delta"]].reset_index(drop=True)
    ranked["rank"] = np.arange(1, len(ranked) + 1)
    ranked["cumulative_gain"] = ranked["loss_delta"].cumsum() / ranked["rank"]
    return ranked


def aggregate(
    edges: pd.DataFrame,
    n_bins: int | None = None,
    thresholds: Sequence[float] | None = None,
) -> LiftReport:
    """Decile, season, season-week, threshold and cumulative-gain tables plus an overall comparison."""
    if edges.empty:
        raise InsufficientData("No EdgeRecords to aggregate.")
    if n_bins is None:
        n_bins = EDGE_CONFIG.n_bins
    if thresholds is None:
        thresholds = EDGE_CONFIG.thresholds

    report = LiftReport(
        by_decile=by_decile(edges, n_bins),
        by_season=by_season(edges),
        by_season_week=by_season_week(edges),
        by_threshold=by_threshold(edges, thresholds),
        cumulative_gain=cumulative_gain(edges),
        overall=compare_sources(edges["home_win"], edges["prob_model_oof"], edges["prob_book"]),
    )
    overall = report.overall.set_index("source")
    logger.info(
        "Lift over %d games: model logloss %.4f vs market %.4f",
        len(edges),
        overall.loc["model", "logloss"],
        overall.loc["market", "logloss"],
    )
    return report
