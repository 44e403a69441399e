from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from nfl_edge.data.feature_engineering.context_builder import ContextBuilder
from nfl_edge.data.feature_engineering.model_frame import build_model_frame, impute_features
from nfl_edge.data.preprocessing.base_dataset import prepare_games
from nfl_edge.errors import WarningTally
from nfl_edge.evaluation.edges import flag_column, make_off_flag
from nfl_edge.pipeline import PipelineResult, book_probabilities

logger = logging.getLogger(__name__)

SCORE_COLUMNS = [
    "game_id",
    "season",
    "week",
    "date",
    "home_team",
    "away_team",
    "spread_close",
    "prob_model",
    "prob_book",
    "edge",
    "abs_edge",
    "side",
]


def score_upcoming(
    games: pd.DataFrame,
    result: PipelineResult,
    tally: WarningTally | None = None,
) -> pd.DataFrame:
    """
    Model and book probabilities for games that have not been played yet.

    The context is rebuilt over the full Game table, so pre-game Elo and
    rest for each fixture come from every completed game before it. Any
    feature still missing (e.g. the previous game is also unplayed) is
    filled with the neutral defaults and tallied as ``feature_imputed``.

    Parameters
    ----------
    games:
        Game table containing completed history plus the fixtures to score.
    result:
        A finished pipeline run; its most recent classifier and market
        baseline are used.

    Returns
    -------
    pd.DataFrame
        One row per unplayed game with prob_model, prob_book, edge,
        abs_edge, side and off_flag_* columns. Empty if nothing is pending.
    """
    if tally is None:
        tally = result.tally
    config = result.config
    thresholds = sorted(config.edge.thresholds)

    prepared = prepare_games(games)
    initial = result.context_builder.initial_ratings if result.context_builder else None
    context = ContextBuilder(elo_config=config.elo, initial_ratings=initial).build(prepared)
    frame = build_model_frame(prepared, context, config.classifier.rest_cap, tally)

    upcoming = frame[frame["home_win"].isna()].reset_index(drop=True)
    if upcoming.empty:
        logger.info("No unplayed games to score")
        return pd.DataFrame(columns=SCORE_COLUMNS + [flag_column(t) for t in thresholds])

    ml_cols = [c for c in ("home_moneyline", "away_moneyline") if c in prepared.columns]
    if ml_cols:
        upcoming = upcoming.merge(prepared[["game_id", *ml_cols]], on="game_id", how="left")

    features = impute_features(upcoming[list(result.classifier.features)], tally=tally)
    upcoming["prob_model"] = result.classifier.predict(features)
    upcoming["prob_book"] = book_probabilities(
        upcoming, result.baseline, config.market.book_source, tally
    ).to_numpy()

    upcoming["edge"] = upcoming["prob_model"] - upcoming["prob_book"]
    upcoming["abs_edge"] = upcoming["edge"].abs()
    upcoming["side"] = np.sign(upcoming["edge"])
    for tau in thresholds:
        upcoming[flag_column(tau)] = make_off_flag(upcoming["edge"], tau)

    logger.info(
        "Scored %d upcoming games; %d without a book probability",
        len(upcoming),
        int(upcoming["prob_book"].isna().sum()),
    )
    return upcoming[SCORE_COLUMNS + [flag_column(t) for t in thresholds]]
