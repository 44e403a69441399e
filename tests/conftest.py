import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def mock_schedules_data() -> pd.DataFrame:
    """Mock nflverse schedules for unit tests (no live API calls)."""
    return pd.DataFrame(
        {
            "game_id": ["2023_01_DET_KC", "2023_01_BUF_NYJ", "2023_18_NYJ_BUF"],
            "season": [2023, 2023, 2023],
            "week": [1, 1, 18],
            "gameday": ["2023-09-07", "2023-09-10", "2024-01-07"],
            "game_type": ["REG", "REG", "REG"],
            "home_team": ["KC", "NYJ", "BUF"],
            "away_team": ["DET", "BUF", "NYJ"],
            "home_score": [20, 22, np.nan],
            "away_score": [21, 16, np.nan],
            "result": [-1, 6, np.nan],
            # market-like columns (nflverse sign: positive = home favored)
            "spread_line": [6.5, -2.5, 3.0],
            "total_line": [54.5, 45.5, 41.0],
            "home_moneyline": [-300, 120, -150],
            "away_moneyline": [250, -140, 130],
        }
    )


def _make_games_df(
    n_seasons: int = 2,
    n_weeks: int = 10,
    n_teams: int = 8,
    n_unplayed: int = 0,
    seed: int = 7,
) -> pd.DataFrame:
    """
    Synthetic Game table: every team plays once a week, stronger teams win
    more often and the closing spread tracks the strength gap.

    The last ``n_unplayed`` games (chronologically) have no score.
    """
    rng = np.random.default_rng(seed)
    teams = [f"T{i:02d}" for i in range(n_teams)]
    strength = dict(zip(teams, rng.normal(0.0, 4.0, n_teams)))

    rows = []
    for season in range(2021, 2021 + n_seasons):
        kickoff = pd.Timestamp(f"{season}-09-07")
        for week in range(1, n_weeks + 1):
            order = rng.permutation(teams)
            date = kickoff + pd.Timedelta(days=7 * (week - 1))
            for j in range(0, n_teams, 2):
                home, away = order[j], order[j + 1]
                gap = strength[home] - strength[away] + 2.0
                margin = int(round(gap + rng.normal(0.0, 10.0)))
                if margin == 0:
                    margin = 1
                spread = -round(2.0 * (gap + rng.normal(0.0, 1.5))) / 2.0
                rows.append(
                    {
                        "game_id": f"{season}_{week:02d}_{away}_{home}",
                        "season": season,
                        "week": week,
                        "date": date,
                        "home_team": home,
                        "away_team": away,
                        "home_score": float(20 + max(margin, 0)),
                        "away_score": float(20 + max(-margin, 0)),
                        "spread_close": spread,
                        "total_close": 44.5,
                        "home_moneyline": -150.0 if spread < 0 else 130.0,
                        "away_moneyline": 130.0 if spread < 0 else -150.0,
                    }
                )

    games = pd.DataFrame(rows)
    if n_unplayed:
        idx = games.index[-n_unplayed:]
        games.loc[idx, ["home_score", "away_score"]] = np.nan
    return games


@pytest.fixture
def make_games():
    """Factory fixture so tests can pick the synthetic table size."""
    return _make_games_df


@pytest.fixture
def synthetic_games() -> pd.DataFrame:
    return _make_games_df()


@pytest.fixture
def scenario_a_games() -> pd.DataFrame:
    """T1 beats T2 24-17 in week 1, then T2 beats T1 27-24 in week 3."""
    return pd.DataFrame(
        {
            "game_id": ["2023_01_T2_T1", "2023_03_T1_T2"],
            "season": [2023, 2023],
            "week": [1, 3],
            "date": pd.to_datetime(["2023-09-10", "2023-09-24"]),
            "home_team": ["T1", "T2"],
            "away_team": ["T2", "T1"],
            "home_score": [24, 27],
            "away_score": [17, 24],
            "spread_close": [-3.0, -1.5],
            "total_close": [44.5, 45.0],
        }
    )
