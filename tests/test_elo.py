import numpy as np
import pandas as pd
import pytest

from nfl_edge.config import EloConfig
from nfl_edge.data.feature_engineering.elo import (
    expected_home_prob,
    init_ratings,
    run_elo,
    update_elo,
)
from nfl_edge.data.preprocessing.base_dataset import prepare_games
from nfl_edge.errors import SchemaViolation


# ---------------------------------------------------------------------------
# Single update
# ---------------------------------------------------------------------------


def test_expected_home_prob_with_hfa():
    assert expected_home_prob(1500, 1500, hfa=65) == pytest.approx(0.59247, abs=1e-4)
    assert expected_home_prob(1500, 1500, hfa=0) == pytest.approx(0.5)


def test_update_elo_home_win():
    home, away = update_elo(1500, 1500, home_win=1, k=20, hfa=65)

    assert home == pytest.approx(1508.15, abs=0.01)
    assert away == pytest.approx(1491.85, abs=0.01)


def test_update_elo_deltas_are_symmetric():
    for result in (0, 1):
        home, away = update_elo(1540, 1480, home_win=result, k=20, hfa=65)
        assert (home - 1540) == pytest.approx(-(away - 1480))


def test_init_ratings_equal_and_mapping():
    assert init_ratings(["B", "A"]) == {"A": 1500.0, "B": 1500.0}
    seeded = init_ratings(["A", "B"], seed={"A": 1600}, base=1450)
    assert seeded == {"A": 1600.0, "B": 1450.0}
    with pytest.raises(ValueError):
        init_ratings(["A"], seed="preseason")


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------


def _replay(games: pd.DataFrame, config: EloConfig) -> dict[str, list[tuple]]:
    """Naive per-team replay: rating history as (date, rating_after) pairs."""
    ratings: dict[str, float] = {}
    history: dict[str, list[tuple]] = {}
    for row in games.sort_values(["date", "game_id"]).itertuples(index=False):
        h = ratings.get(row.home_team, config.base_rating)
        a = ratings.get(row.away_team, config.base_rating)
        if pd.isna(row.home_win):
            continue
        h, a = update_elo(h, a, row.home_win, config.k, config.home_field_advantage)
        ratings[row.home_team], ratings[row.away_team] = h, a
        history.setdefault(row.home_team, []).append((row.date, h))
        history.setdefault(row.away_team, []).append((row.date, a))
    return history


def test_run_elo_features_are_pre_game(synthetic_games):
    games = prepare_games(synthetic_games)
    config = EloConfig()
    result = run_elo(games, config=config)
    history = _replay(games, config)

    features = games[["game_id", "date", "home_team", "away_team"]].merge(
        result.features, on="game_id"
    )
    for row in features.itertuples(index=False):
        for team, recorded in ((row.home_team, row.elo_home), (row.away_team, row.elo_away)):
            earlier = [r for d, r in history.get(team, []) if d < row.date]
            expected = earlier[-1] if earlier else config.base_rating
            assert recorded == pytest.approx(expected)


def test_run_elo_first_game_uses_seed():
    games = prepare_games(
        pd.DataFrame(
            {
                "game_id": ["g1"],
                "season": [2023],
                "week": [1],
                "date": ["2023-09-10"],
                "home_team": ["A"],
                "away_team": ["B"],
                "home_score": [21],
                "away_score": [14],
            }
        )
    )
    result = run_elo(games, initial_ratings={"A": 1550.0, "B": 1500.0})
    row = result.features.iloc[0]

    assert row["elo_home"] == 1550.0
    assert row["elo_away"] == 1500.0
    assert row["elo_diff"] == pytest.approx(1550 - 1500 + 65)
    assert result.ratings["A"] > 1550.0


def test_run_elo_skips_unscored_games(make_games):
    games = prepare_games(make_games(n_unplayed=4))
    played = games[games["home_win"].notna()]

    full = run_elo(games)
    played_only = run_elo(played)

    assert full.ratings == played_only.ratings
    unplayed = full.features[games["home_win"].isna().to_numpy()]
    assert len(unplayed) == 4
    assert unplayed[["elo_home", "elo_away"]].notna().all().all()


def test_run_elo_preserves_row_order(synthetic_games):
    games = prepare_games(synthetic_games)
    shuffled = games.sample(frac=1.0, random_state=3)

    result = run_elo(shuffled)
    assert list(result.features["game_id"]) == list(shuffled["game_id"])

    ordered = run_elo(games).features.set_index("game_id")
    again = result.features.set_index("game_id").loc[ordered.index]
    np.testing.assert_allclose(again["elo_home"], ordered["elo_home"])


def test_run_elo_does_not_mutate_initial_ratings():
    games = prepare_games(
        pd.DataFrame(
            {
                "game_id": ["g1"],
                "season": [2023],
                "week": [1],
                "date": ["2023-09-10"],
                "home_team": ["A"],
                "away_team": ["B"],
                "home_score": [21],
                "away_score": [14],
            }
        )
    )
    seed = {"A": 1500.0, "B": 1500.0}
    run_elo(games, initial_ratings=seed)
    assert seed == {"A": 1500.0, "B": 1500.0}


def test_run_elo_missing_columns():
    with pytest.raises(SchemaViolation):
        run_elo(pd.DataFrame({"game_id": ["g1"]}))
