import pandas as pd
import pytest

from nfl_edge.data.feature_engineering.lag_features import (
    LAG_COLUMNS,
    add_team_lags,
    build_lag_features,
    build_team_games,
)
from nfl_edge.data.preprocessing.base_dataset import prepare_games
from nfl_edge.errors import SchemaViolation


def test_scenario_a_rest_and_prev_margin(scenario_a_games):
    games = prepare_games(scenario_a_games)
    lags = build_lag_features(games).set_index("game_id")

    first = lags.loc["2023_01_T2_T1"]
    assert pd.isna(first["rest_home"]) and pd.isna(first["rest_away"])
    assert pd.isna(first["prev_margin_home"]) and pd.isna(first["prev_margin_away"])
    assert bool(first["first_game_home"]) and bool(first["first_game_away"])

    second = lags.loc["2023_03_T1_T2"]
    # T1 is away in game 2; its previous game was 14 days earlier, won by 7.
    assert second["rest_away"] == 14
    assert second["prev_margin_away"] == pytest.approx(7.0)
    assert second["rest_home"] == 14
    assert second["prev_margin_home"] == pytest.approx(-7.0)
    assert not bool(second["first_game_away"])


def test_first_game_rest_is_missing_not_zero(scenario_a_games):
    lags = build_lag_features(prepare_games(scenario_a_games))

    assert str(lags["rest_home"].dtype) == "Int64"
    assert (lags["rest_home"].fillna(-1) != 0).all()


def test_lags_span_seasons(make_games):
    games = prepare_games(make_games(n_seasons=2, n_weeks=3))
    lags = build_lag_features(games).merge(games[["game_id", "season", "week"]], on="game_id")

    # Only the very first week has no prior game; season 2 week 1 looks back
    # to the end of season 1.
    first_week = lags[(lags["season"] == 2021) & (lags["week"] == 1)]
    assert first_week["first_game_home"].all()
    opener = lags[(lags["season"] == 2022) & (lags["week"] == 1)]
    assert not opener["first_game_home"].any()
    assert (opener["rest_home"] > 300).all()


def test_unplayed_games_have_missing_margin(make_games):
    games = prepare_games(make_games(n_seasons=1, n_weeks=3, n_teams=4, n_unplayed=2))
    team_df = add_team_lags(build_team_games(games))

    last_week = games.loc[games["week"] == 3, "game_id"]
    rows = team_df[team_df["game_id"].isin(last_week)]
    # week 2 results are known, so week 3 margins are filled
    assert rows["prev_margin"].notna().all()
    assert team_df["margin"].isna().sum() == 4


def test_build_lag_features_one_row_per_game(synthetic_games):
    games = prepare_games(synthetic_games)
    lags = build_lag_features(games)

    assert list(lags.columns) == LAG_COLUMNS
    assert len(lags) == len(games)
    assert list(lags["game_id"]) == list(games["game_id"])


def test_build_team_games_missing_columns():
    with pytest.raises(SchemaViolation):
        build_team_games(pd.DataFrame({"game_id": ["g1"]}))
