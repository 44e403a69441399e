from __future__ import annotations

import logging

import pandas as pd

from nfl_edge.errors import SchemaViolation, WarningTally, warn_out_of_range

logger = logging.getLogger(__name__)

FEATURE_COLUMNS = [
    "home",
    "spread_close",
    "total_close",
    "week",
    "rest_home_capped",
    "rest_away_capped",
    "first_game_home",
    "first_game_away",
    "prev_margin_home",
    "prev_margin_away",
    "elo_diff",
]

GAME_ATTRIBUTE_COLUMNS = [
    "game_id",
    "season",
    "week",
    "date",
    "home_team",
    "away_team",
    "home_win",
    "spread_close",
    "total_close",
]

# Neutral placeholders used when a feature is unknown at scoring time.
# These are an approximation: a standard week of rest, an even previous
# game and league-average ratings.
NEUTRAL_DEFAULTS: dict[str, float] = {
    "rest_home_capped": 7.0,
    "rest_away_capped": 7.0,
    "first_game_home": 0.0,
    "first_game_away": 0.0,
    "prev_margin_home": 0.0,
    "prev_margin_away": 0.0,
    "elo_diff": 65.0,
    "home": 1.0,
}


def build_model_frame(
    games: pd.DataFrame,
    context: pd.DataFrame,
    rest_cap: int = 14,
    tally: WarningTally | None = None,
) -> pd.DataFrame:
    """
    Join Game attributes onto the context table and derive model inputs.

    - rest_*_capped: rest clipped at ``rest_cap``; a team's first game (no
      prior game) is filled with the cap and flagged by first_game_*.
    - prev_margin_*: NaN (first game / previous game unscored) -> 0,
      counted as ``feature_imputed``.

    The join must be exactly 1:1 on game_id.
    """
    missing = [c for c in GAME_ATTRIBUTE_COLUMNS if c not in games.columns]
    if missing:
        raise SchemaViolation(f"Game table missing columns for model frame: {missing}")

    attrs = games[GAME_ATTRIBUTE_COLUMNS]
    if attrs["game_id"].duplicated().any() or context["game_id"].duplicated().any():
        raise SchemaViolation("Join cardinality violation: duplicate game_id in model frame inputs.")

    frame = attrs.merge(context, on="game_id", how="inner")
    if len(frame) != len(attrs) or len(frame) != len(context):
        raise SchemaViolation(
            f"Join cardinality violation: {len(attrs)} games, {len(context)} context rows, "
            f"{len(frame)} joined."
        )

    for side in ("home", "away"):
        rest = frame[f"rest_{side}"].astype("Float64")
        frame[f"rest_{side}_capped"] = rest.clip(upper=rest_cap).fillna(rest_cap).astype(float)
        frame[f"first_game_{side}"] = frame[f"first_game_{side}"].astype(int)

        col = f"prev_margin_{side}"
        n_missing = int(frame[col].isna().sum())
        if n_missing:
            if tally is not None:
                tally.add("feature_imputed", n_missing)
            logger.debug("Imputed %d missing %s values with 0", n_missing, col)
        frame[col] = frame[col].fillna(0.0).astype(float)

    frame = frame.sort_values(["season", "week", "date", "game_id"], kind="mergesort")
    return frame.reset_index(drop=True)


def impute_features(
    X: pd.DataFrame,
    defaults: dict[str, float] | None = None,
    tally: WarningTally | None = None,
) -> pd.DataFrame:
    """
    Fill NA feature values with documented neutral placeholders.

    Columns without a configured default are left untouched; the number of
    filled cells is surfaced through a single OutOfRangeInput warning.
    """
    if defaults is None:
        defaults = NEUTRAL_DEFAULTS
    out = X.copy()
    filled = 0
    for col, value in defaults.items():
        if col in out.columns:
            mask = out[col].isna()
            filled += int(mask.sum())
            out.loc[mask, col] = value
    warn_out_of_range(
        "feature_imputed",
        filled,
        "NA features replaced with neutral defaults",
        tally,
    )
    return out
