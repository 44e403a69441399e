import numpy as np
import pandas as pd
import pytest

from nfl_edge.config import SplitConfig
from nfl_edge.errors import InsufficientData, LeakageRisk
from nfl_edge.evaluation.splits import (
    TemporalSplit,
    assert_no_leakage,
    make_splits,
    rolling_splits,
    season_split,
    season_week_buckets,
    split_by_season,
    temporal_split,
)


def _make_weeks_df(seasons=(2021, 2022), weeks=10, games_per_week=3) -> pd.DataFrame:
    rows = [
        {"game_id": f"{s}_{w:02d}_{g}", "season": s, "week": w}
        for s in seasons
        for w in range(1, weeks + 1)
        for g in range(games_per_week)
    ]
    # shuffle so the splitter cannot rely on row order
    return pd.DataFrame(rows).sample(frac=1.0, random_state=0).reset_index(drop=True)


def _assert_test_after_train(df: pd.DataFrame, split: TemporalSplit) -> None:
    train_keys = list(zip(df["season"].iloc[split.train_index], df["week"].iloc[split.train_index]))
    test_keys = list(zip(df["season"].iloc[split.test_index], df["week"].iloc[split.test_index]))
    assert min(test_keys) > max(train_keys)


def test_temporal_split_fraction_floor():
    df = _make_weeks_df()
    split = temporal_split(df, train_fraction=0.7)

    # 20 buckets -> 14 train weeks
    assert len(split.train_buckets) == 14
    assert len(split.test_buckets) == 6
    assert split.boundary == ((2022, 4), (2022, 5))
    assert len(split.train_index) + len(split.test_index) == len(df)
    _assert_test_after_train(df, split)


def test_temporal_split_week_beats_row_order():
    df = _make_weeks_df(seasons=(2023,), weeks=4)
    split = temporal_split(df, train_fraction=0.5)

    assert set(df["week"].iloc[split.train_index]) == {1, 2}
    assert set(df["week"].iloc[split.test_index]) == {3, 4}


def test_temporal_split_bad_fraction():
    with pytest.raises(ValueError):
        temporal_split(_make_weeks_df(), train_fraction=1.0)


def test_temporal_split_single_week_is_insufficient():
    df = _make_weeks_df(seasons=(2023,), weeks=1)
    with pytest.raises(InsufficientData):
        temporal_split(df, train_fraction=0.7)


def test_rolling_splits_window():
    df = _make_weeks_df()
    folds = rolling_splits(df, window_weeks=5)

    assert len(folds) == 20 - 5
    for fold in folds:
        assert len(fold.train_buckets) == 5
        assert len(fold.test_buckets) == 1
        _assert_test_after_train(df, fold)
    assert folds[0].label == "rolling_2021_06"


def test_expanding_splits_grow():
    df = _make_weeks_df()
    folds = rolling_splits(df, window_weeks=5, expanding=True, min_train_weeks=3)

    sizes = [len(f.train_buckets) for f in folds]
    assert sizes[0] == 3
    assert sizes == sorted(sizes)
    assert folds[-1].test_buckets == ((2022, 10),)


def test_rolling_splits_need_enough_weeks():
    df = _make_weeks_df(seasons=(2023,), weeks=3)
    with pytest.raises(InsufficientData):
        rolling_splits(df, window_weeks=5)


def test_season_split():
    df = _make_weeks_df(seasons=(2020, 2021, 2022))
    split = season_split(df, train_seasons=[2020, 2021], test_seasons=[2022])

    assert set(df["season"].iloc[split.test_index]) == {2022}
    _assert_test_after_train(df, split)


def test_season_split_rejects_backwards_seasons():
    df = _make_weeks_df(seasons=(2020, 2021, 2022))
    with pytest.raises(LeakageRisk):
        season_split(df, train_seasons=[2022], test_seasons=[2021])


def test_split_by_season_overlap():
    df = _make_weeks_df()
    with pytest.raises(ValueError):
        split_by_season(df, train_seasons=[2021, 2022], test_seasons=[2022])


def test_split_by_season_frames():
    df = _make_weeks_df()
    train, val, test = split_by_season(df, train_seasons=[2021], test_seasons=[2022])

    assert val is None
    assert set(train["season"]) == {2021}
    assert set(test["season"]) == {2022}


def test_assert_no_leakage_catches_hand_built_split():
    df = _make_weeks_df(seasons=(2023,), weeks=4).sort_values("week").reset_index(drop=True)
    bad = TemporalSplit(
        train_index=np.flatnonzero(df["week"].isin([1, 3]).to_numpy()),
        test_index=np.flatnonzero((df["week"] == 2).to_numpy()),
        train_buckets=((2023, 1), (2023, 3)),
        test_buckets=((2023, 2),),
    )
    with pytest.raises(LeakageRisk):
        assert_no_leakage(df, bad)


def test_make_splits_dispatch():
    df = _make_weeks_df()

    assert len(make_splits(df, SplitConfig(policy="fraction"))) == 1
    assert len(make_splits(df, SplitConfig(policy="rolling", window_weeks=8))) == 12
    assert len(make_splits(df, SplitConfig(policy="expanding", window_weeks=8, min_train_weeks=10))) == 10
    season = make_splits(df, SplitConfig(policy="season", train_seasons=(2021,), test_seasons=(2022,)))
    assert season[0].label == "season"
    with pytest.raises(ValueError):
        make_splits(df, SplitConfig(policy="random"))


def test_season_week_buckets_sorted():
    df = _make_weeks_df()
    buckets = season_week_buckets(df)
    assert buckets[0] == (2021, 1)
    assert buckets[-1] == (2022, 10)
    assert len(buckets) == 20
