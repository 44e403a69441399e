import numpy as np
import pandas as pd
import pytest

from nfl_edge.data.preprocessing.base_dataset import (
    BaseDatasetConfig,
    build_base_dataset,
    load_base_dataset,
    prepare_games,
    validate_games,
)
from nfl_edge.errors import SchemaViolation


def _make_games_df() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "game_id": ["g3", "g1", "g2"],
            "season": [2023, 2023, 2023],
            "week": [2, 1, 1],
            "date": ["2023-09-17", "2023-09-10", "2023-09-10"],
            "home_team": ["A", "A", "C"],
            "away_team": ["B", "B", "D"],
            "home_score": [np.nan, 24.0, 10.0],
            "away_score": [np.nan, 17.0, 13.0],
        }
    )


def test_prepare_games_sorts_and_indexes():
    df = prepare_games(_make_games_df())

    assert list(df["game_id"]) == ["g1", "g2", "g3"]
    assert list(df["game_index"]) == [0, 1, 2]
    assert pd.api.types.is_datetime64_any_dtype(df["date"])


def test_prepare_games_derives_nullable_home_win():
    df = prepare_games(_make_games_df()).set_index("game_id")

    assert df.loc["g1", "home_win"] == 1
    assert df.loc["g2", "home_win"] == 0
    assert pd.isna(df.loc["g3", "home_win"])


def test_prepare_games_can_drop_unplayed():
    df = prepare_games(_make_games_df(), include_unplayed=False)
    assert list(df["game_id"]) == ["g1", "g2"]


def test_validate_rejects_duplicate_game_id():
    df = _make_games_df()
    df.loc[2, "game_id"] = "g1"
    with pytest.raises(SchemaViolation, match="duplicate"):
        prepare_games(df)


def test_validate_rejects_missing_columns():
    df = _make_games_df().drop(columns=["away_team"])
    with pytest.raises(SchemaViolation, match="away_team"):
        prepare_games(df)


def test_validate_rejects_home_win_without_scores():
    df = _make_games_df()
    df["date"] = pd.to_datetime(df["date"])
    df["home_win"] = pd.array([1, 1, 0], dtype="Int64")
    with pytest.raises(SchemaViolation):
        validate_games(df)


def test_validate_rejects_home_win_disagreeing_with_scores():
    df = _make_games_df()
    df["date"] = pd.to_datetime(df["date"])
    df["home_win"] = pd.array([pd.NA, 0, 0], dtype="Int64")
    with pytest.raises(SchemaViolation, match="disagrees"):
        validate_games(df)


def test_validate_rejects_non_datetime_date():
    with pytest.raises(TypeError):
        validate_games(_make_games_df())


def test_validate_rejects_empty_table():
    with pytest.raises(SchemaViolation):
        validate_games(_make_games_df().iloc[0:0])


def test_load_base_dataset_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_base_dataset(2020, 2021, processed_dir=tmp_path)


def test_load_base_dataset_roundtrip(tmp_path):
    df = prepare_games(_make_games_df())
    df.to_parquet(tmp_path / "base_games_2023_2023.parquet", index=False)

    loaded = load_base_dataset(2023, 2023, processed_dir=tmp_path)
    assert list(loaded["game_id"]) == ["g1", "g2", "g3"]


@pytest.mark.integration
def test_build_base_dataset_real():
    config = BaseDatasetConfig(seasons=[2023], include_markets=True, save_parquet=False)
    df = build_base_dataset(config)

    assert df["game_id"].is_unique
    assert df["game_index"].min() == 0
    assert df["game_index"].max() == len(df) - 1
    assert df["date"].is_monotonic_increasing
