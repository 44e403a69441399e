from __future__ import annotations

import pandas as pd

from nfl_edge.errors import SchemaViolation

LAG_COLUMNS = [
    "game_id",
    "rest_home",
    "rest_away",
    "prev_margin_home",
    "prev_margin_away",
    "first_game_home",
    "first_game_away",
]


def build_team_games(games: pd.DataFrame) -> pd.DataFrame:
    """
    Expand one-row-per-game into two-row-per-game team-long format.

    Adds:
    - team, opponent, is_home
    - points_for, points_against
    - margin (points_for - points_against; NaN for unplayed games)
    """
    required = ["game_id", "date", "home_team", "away_team", "home_score", "away_score"]
    missing = [c for c in required if c not in games.columns]
    if missing:
        raise SchemaViolation(f"Lag builder missing required columns: {missing}")

    base = games[required]

    # home rows
    home = base.copy()
    home["team"] = home["home_team"]
    home["opponent"] = home["away_team"]
    home["is_home"] = True
    home["points_for"] = home["home_score"]
    home["points_against"] = home["away_score"]

    # away rows
    away = base.copy()
    away["team"] = away["away_team"]
    away["opponent"] = away["home_team"]
    away["is_home"] = False
    away["points_for"] = away["away_score"]
    away["points_against"] = away["home_score"]

    team_df = pd.concat([home, away], ignore_index=True)
    team_df["margin"] = (
        team_df["points_for"].astype(float) - team_df["points_against"].astype(float)
    )
    return team_df[
        ["game_id", "date", "team", "opponent", "is_home", "points_for", "points_against", "margin"]
    ]


def add_team_lags(team_df: pd.DataFrame) -> pd.DataFrame:
    """
    Add per-team lags over the team's whole history (not reset by season).

    Adds:
    - rest_days: calendar days since the team's previous game (<NA> for its first game)
    - prev_margin: the team's margin in its previous game (NaN for its first game,
      or when that game has no score yet)
    - first_game: True when the team has no earlier game

    Ordering is (date, game_id) within team, so each value depends only on
    strictly earlier rows.
    """
    df = team_df.sort_values(["team", "date", "game_id"], kind="mergesort").copy()
    group = df.groupby("team", sort=False)

    df["rest_days"] = group["date"].diff().dt.days.astype("Int64")
    df["prev_margin"] = group["margin"].shift(1)
    df["first_game"] = group.cumcount() == 0
    return df


def build_lag_features(games: pd.DataFrame) -> pd.DataFrame:
    """
    Rest-day and previous-margin features for both sides of every game.

    Returns one row per game (same row order as ``games``) with
    rest_home, rest_away (nullable Int64), prev_margin_home,
    prev_margin_away (float) and first_game_home, first_game_away (bool).
    A missing rest value always means "no prior game", never zero rest.
    """
    team_df = add_team_lags(build_team_games(games))

    cols = ["game_id", "rest_days", "prev_margin", "first_game"]
    home = team_df.loc[team_df["is_home"], cols].rename(
        columns={
            "rest_days": "rest_home",
            "prev_margin": "prev_margin_home",
            "first_game": "first_game_home",
        }
    )
    away = team_df.loc[~team_df["is_home"], cols].rename(
        columns={
            "rest_days": "rest_away",
            "prev_margin": "prev_margin_away",
            "first_game": "first_game_away",
        }
    )

    out = games[["game_id"]].merge(home, on="game_id", how="left", validate="one_to_one")
    out = out.merge(away, on="game_id", how="left", validate="one_to_one")
    return out[LAG_COLUMNS]
