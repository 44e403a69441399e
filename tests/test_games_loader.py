import pandas as pd
import pytest

from nfl_edge.data.loaders.games import GameDataLoader, GameDataLoaderConfig


class _FakeClient:
    """Stands in for NflreadpyClient; records the seasons requested."""

    def __init__(self, frame):
        self.frame = frame
        self.requested = None

    def load_schedules(self, seasons=None):
        self.requested = list(seasons)
        return self.frame


def test_games_loader_with_mock(mock_schedules_data):
    """Unit test using mock schedules (no external dependency)."""
    client = _FakeClient(mock_schedules_data)
    config = GameDataLoaderConfig(seasons=[2023], save_parquet=False, include_markets=True)
    df = GameDataLoader(config=config, client=client).load()

    assert client.requested == [2023]
    assert isinstance(df, pd.DataFrame)
    assert len(df) == 3

    for col in [
        "game_id",
        "season",
        "week",
        "date",
        "home_team",
        "away_team",
        "home_score",
        "away_score",
        "home_win",
        "spread_close",
        "total_close",
        "home_moneyline",
        "away_moneyline",
    ]:
        assert col in df.columns

    assert pd.api.types.is_datetime64_any_dtype(df["date"])
    assert "spread_line" not in df.columns
    assert "gameday" not in df.columns


def test_games_loader_flips_spread_sign(mock_schedules_data):
    """nflverse spread_line is home-positive; spread_close is home-negative."""
    config = GameDataLoaderConfig(seasons=[2023], save_parquet=False)
    df = GameDataLoader(config=config, client=_FakeClient(mock_schedules_data)).load()

    by_id = df.set_index("game_id")
    assert by_id.loc["2023_01_DET_KC", "spread_close"] == pytest.approx(-6.5)
    assert by_id.loc["2023_01_BUF_NYJ", "spread_close"] == pytest.approx(2.5)


def test_games_loader_home_win_nullable(mock_schedules_data):
    config = GameDataLoaderConfig(seasons=[2023], save_parquet=False)
    df = GameDataLoader(config=config, client=_FakeClient(mock_schedules_data)).load()

    by_id = df.set_index("game_id")
    assert str(df["home_win"].dtype) == "Int64"
    assert by_id.loc["2023_01_DET_KC", "home_win"] == 0
    assert by_id.loc["2023_01_BUF_NYJ", "home_win"] == 1
    assert pd.isna(by_id.loc["2023_18_NYJ_BUF", "home_win"])


def test_games_loader_without_markets(mock_schedules_data):
    config = GameDataLoaderConfig(seasons=[2023], save_parquet=False, include_markets=False)
    df = GameDataLoader(config=config, client=_FakeClient(mock_schedules_data)).load()

    for col in ["spread_close", "total_close", "home_moneyline", "away_moneyline"]:
        assert col not in df.columns


def test_games_loader_requires_seasons(mock_schedules_data):
    config = GameDataLoaderConfig(seasons=[], save_parquet=False)
    loader = GameDataLoader(config=config, client=_FakeClient(mock_schedules_data))
    with pytest.raises(ValueError):
        loader.load()


def test_games_loader_rejects_non_dataframe():
    config = GameDataLoaderConfig(seasons=[2023], save_parquet=False)
    loader = GameDataLoader(config=config, client=_FakeClient([{"game_id": "x"}]))
    with pytest.raises(TypeError):
        loader.load()


@pytest.mark.integration
def test_games_loader_real_smoke():
    """Optional integration test that hits nflreadpy for real."""
    config = GameDataLoaderConfig(seasons=[2023], save_parquet=False, include_markets=True)
    df = GameDataLoader(config=config).load()

    assert len(df) > 0
    assert df["game_id"].is_unique
    assert pd.api.types.is_datetime64_any_dtype(df["date"])
    # Home favorites (negative spread) should win more often than not
    played = df[df["home_win"].notna()]
    favored = played[played["spread_close"] < 0]
    assert favored["home_win"].astype(int).mean() > 0.5
