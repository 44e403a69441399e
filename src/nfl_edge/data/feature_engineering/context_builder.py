from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pandas as pd

from nfl_edge.config import ELO_CONFIG, EloConfig
from nfl_edge.data.feature_engineering.elo import EloResult, run_elo
from nfl_edge.data.feature_engineering.lag_features import build_lag_features
from nfl_edge.data.preprocessing.base_dataset import prepare_games
from nfl_edge.errors import SchemaViolation

logger = logging.getLogger(__name__)

CONTEXT_COLUMNS = [
    "game_id",
    "home",
    "rest_home",
    "rest_away",
    "prev_margin_home",
    "prev_margin_away",
    "first_game_home",
    "first_game_away",
    "elo_home",
    "elo_away",
    "elo_diff",
]

# Owned by the Game table; joined at model-training time instead.
GAME_OWNED_COLUMNS = {"season", "week", "date", "spread_close", "total_close"}


def _require_unique_keys(df: pd.DataFrame, name: str) -> None:
    if "game_id" not in df.columns:
        raise SchemaViolation(f"{name} has no 'game_id' column.")
    dupes = df["game_id"].duplicated().sum()
    if dupes:
        raise SchemaViolation(f"{name} has {dupes} duplicate game_id values.")


def assemble_context(
    games: pd.DataFrame,
    elo_features: pd.DataFrame,
    lag_features: pd.DataFrame,
) -> pd.DataFrame:
    """
    Join Elo and lag features into the context table, 1:1 with ``games``.

    Raises
    ------
    SchemaViolation
        If any input has duplicate keys, or the joined table does not have
        exactly one row per game (join cardinality violation).
    """
    for df, name in (
        (games, "games"),
        (elo_features, "elo_features"),
        (lag_features, "lag_features"),
    ):
        _require_unique_keys(df, name)

    n_games = len(games)
    context = games[["game_id"]].merge(
        elo_features.drop(columns=list(GAME_OWNED_COLUMNS & set(elo_features.columns))),
        on="game_id",
        how="left",
    )
    context = context.merge(
        lag_features.drop(columns=list(GAME_OWNED_COLUMNS & set(lag_features.columns))),
        on="game_id",
        how="left",
    )

    if len(context) != n_games:
        raise SchemaViolation(
            f"Join cardinality violation: {n_games} games but {len(context)} context rows."
        )
    orphans = set(elo_features["game_id"]) - set(games["game_id"])
    orphans |= set(lag_features["game_id"]) - set(games["game_id"])
    if orphans:
        raise SchemaViolation(
            f"Join cardinality violation: {len(orphans)} feature rows have no matching game."
        )
    if context[["elo_home", "elo_away"]].isna().any().any():
        raise SchemaViolation("Join cardinality violation: games without Elo features.")

    context["home"] = 1
    return context[CONTEXT_COLUMNS]


@dataclass
class ContextBuilder:
    """
    Build the context table from a Game table.

    Typical usage
    -------------
        builder = ContextBuilder()
        context = builder.build(games)
        builder.last_elo.ratings  # ratings after the last scored game

    Elo and lag features are independent of each other; both only read
    the prepared Game table.
    """

    elo_config: EloConfig = field(default_factory=lambda: ELO_CONFIG)
    initial_ratings: dict[str, float] | None = None
    last_elo: EloResult | None = field(default=None, init=False)

    def build(self, games: pd.DataFrame) -> pd.DataFrame:
        prepared = prepare_games(games)
        self.last_elo = run_elo(prepared, self.initial_ratings, self.elo_config)
        lags = build_lag_features(prepared)
        context = assemble_context(prepared, self.last_elo.features, lags)

        logger.info(
            "Context built: %d rows, %d first-game home / %d first-game away",
            len(context),
            int(context["first_game_home"].sum()),
            int(context["first_game_away"].sum()),
        )
        return context
