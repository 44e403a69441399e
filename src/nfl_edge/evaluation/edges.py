"""
Edge labels: where the model's out-of-fold probability disagrees with the book.

Definitions used throughout the package:

- ``edge = prob_model_oof - prob_book`` (model vs market disagreement)
- ``calibration_residual = home_win - prob_book`` (outcome vs market)

The two measure different things and are never stored under the same
column name. Only predictions wrapped in ``OutOfFoldPredictions`` are
accepted, so in-sample fits cannot reach the labeler.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from nfl_edge.config import EDGE_CONFIG
from nfl_edge.errors import LeakageRisk, SchemaViolation, WarningTally
from nfl_edge.evaluation.metrics import logit, logloss_per_row
from nfl_edge.models.classifier import OutOfFoldPredictions

logger = logging.getLogger(__name__)


def flag_column(tau: float) -> str:
    """Column name for a threshold, e.g. 0.05 -> 'off_flag_005'."""
    return f"off_flag_{int(round(tau * 100)):03d}"


FLAG_TOLERANCE = 1e-12


def make_off_flag(edge, tau: float) -> np.ndarray:
    """
    1 where |edge| > tau (strictly), else 0.

    Differences within FLAG_TOLERANCE of tau count as equal, so
    0.62 - 0.55 is not flagged at tau = 0.07.
    """
    return (np.abs(np.asarray(edge, dtype=float)) - tau > FLAG_TOLERANCE).astype(int)


def calibration_residual(home_win, prob_book) -> np.ndarray:
    """Outcome minus book probability. Not an edge."""
    return np.asarray(home_win, dtype=float) - np.asarray(prob_book, dtype=float)


def label_edges(
    games: pd.DataFrame,
    oof: OutOfFoldPredictions,
    market_probs: pd.Series,
    thresholds: Iterable[float] | None = None,
    tally: WarningTally | None = None,
    book_in_sample: Iterable | None = None,
) -> pd.DataFrame:
    """
    Build one EdgeRecord per game that has an outcome, an out-of-fold model
    probability and a market probability.

    Parameters
    ----------
    games:
        Rows with game_id, season, week, home_win.
    oof:
        Out-of-fold predictions (train-partition CV and/or held-out test).
    market_probs:
        Book probability indexed by game_id.
    thresholds:
        τ values for the off flags. Defaults to EDGE_CONFIG.thresholds.
    book_in_sample:
        game_ids whose book probability came from a baseline fit on those
        same games. They are marked in the ``book_in_sample`` column.

    Returns
    -------
    pd.DataFrame
        game_id, season, week, partition, fold, home_win, prob_book,
        book_in_sample, prob_model_oof, edge, abs_edge, side, off_flag_*,
        loss_model, loss_book, loss_delta, delta_logit.
    """
    if not isinstance(oof, OutOfFoldPredictions):
        raise LeakageRisk(
            "label_edges() only accepts OutOfFoldPredictions; in-sample predictions "
            "would bias every edge statistic."
        )
    if thresholds is None:
        thresholds = EDGE_CONFIG.thresholds
    thresholds = sorted(float(t) for t in thresholds)

    missing = [c for c in ("game_id", "season", "week", "home_win") if c not in games.columns]
    if missing:
        raise SchemaViolation(f"Edge labeler missing game columns: {missing}")
    if games["game_id"].duplicated().any():
        raise SchemaViolation("Edge labeler received duplicate game_id values.")

    preds = oof.to_frame()
    book = pd.Series(market_probs).rename("prob_book").rename_axis("game_id")

    df = preds.merge(games[["game_id", "season", "week", "home_win"]], on="game_id", how="left")
    df = df.merge(book.reset_index(), on="game_id", how="left")

    usable = df["home_win"].notna() & df["prob_model_oof"].notna() & df["prob_book"].notna()
    dropped = int((~usable).sum())
    if dropped:
        if tally is not None:
            tally.add("missing_oof", dropped)
        logger.info("Edge labeler dropped %d games without outcome/OOF/book probability", dropped)
    df = df.loc[usable].copy()

    y = df["home_win"].astype(int).to_numpy()
    p_model = df["prob_model_oof"].astype(float).to_numpy()
    p_book = df["prob_book"].astype(float).to_numpy()

    df["home_win"] = y
    in_sample = set(book_in_sample) if book_in_sample is not None else set()
    df["book_in_sample"] = df["game_id"].isin(in_sample)
    df["edge"] = p_model - p_book
    df["abs_edge"] = np.abs(df["edge"])
    df["side"] = np.sign(df["edge"]).astype(int)
    for tau in thresholds:
        df[flag_column(tau)] = make_off_flag(df["edge"], tau)
    df["loss_model"] = logloss_per_row(y, p_model)
    df["loss_book"] = logloss_per_row(y, p_book)
    df["loss_delta"] = df["loss_book"] - df["loss_model"]
    df["delta_logit"] = logit(p_model) - logit(p_book)

    cols = (
        ["game_id", "season", "week", "partition", "fold", "home_win", "prob_book",
         "book_in_sample", "prob_model_oof", "edge", "abs_edge", "side"]
        + [flag_column(t) for t in thresholds]
        + ["loss_model", "loss_book", "loss_delta", "delta_logit"]
    )
    df = df[cols].sort_values(["season", "week", "game_id"], kind="mergesort")
    return df.reset_index(drop=True)


def summarise_edges_by_season(
    edges: pd.DataFrame,
    thresholds: Sequence[float] | None = None,
) -> pd.DataFrame:
    """Per-season count, mean/sd edge, mean |edge| and share off at each τ."""
    if thresholds is None:
        thresholds = EDGE_CONFIG.thresholds
    aggs = {
        "n": ("edge", "size"),
        "mean_edge": ("edge", "mean"),
        "sd_edge": ("edge", "std"),
        "mean_abs_edge": ("abs_edge", "mean"),
        "mean_loss_delta": ("loss_delta", "mean"),
    }
    for tau in thresholds:
        col = flag_column(tau)
        if col in edges.columns:
            aggs[f"pct_{col.replace('flag_', '')}"] = (col, "mean")
    return edges.groupby("season").agg(**aggs).reset_index()
