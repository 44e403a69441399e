"""
Chronological train/test splits.

Every split is keyed on (season, week) buckets and is checked on
construction: each test bucket must sort strictly after every train
bucket. Fitting code takes a ``TemporalSplit`` as a required argument and
only ever sees ``split.train_frame(df)``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from nfl_edge.config import SPLIT_CONFIG, SplitConfig
from nfl_edge.errors import InsufficientData, LeakageRisk

logger = logging.getLogger(__name__)

Bucket = tuple[int, int]


def _to_int_list(seasons: Iterable[int] | None) -> list[int]:
    if seasons is None:
        return []
    return sorted(int(s) for s in seasons)


@dataclass(frozen=True)
class TemporalSplit:
    """
    Row positions of a chronological split.

    Attributes
    ----------
    train_index, test_index:
        Positional indices into the frame the split was built from.
    train_buckets, test_buckets:
        Ordered (season, week) pairs on each side.
    label:
        Human-readable name used in logs and fold columns.
    """

    train_index: np.ndarray
    test_index: np.ndarray
    train_buckets: tuple[Bucket, ...]
    test_buckets: tuple[Bucket, ...]
    label: str = "split"

    def train_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.iloc[self.train_index]

    def test_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.iloc[self.test_index]

    @property
    def boundary(self) -> tuple[Bucket, Bucket]:
        """(last train bucket, first test bucket)."""
        return self.train_buckets[-1], self.test_buckets[0]


def _bucket_keys(df: pd.DataFrame) -> pd.Series:
    for col in ("season", "week"):
        if col not in df.columns:
            raise ValueError(f"DataFrame must contain a '{col}' column for temporal splits.")
    return pd.Series(
        list(zip(df["season"].astype(int), df["week"].astype(int))),
        index=df.index,
    )


def season_week_buckets(df: pd.DataFrame) -> list[Bucket]:
    """Distinct (season, week) pairs in ascending order."""
    return sorted(set(_bucket_keys(df)))


def _make_split(
    df: pd.DataFrame,
    train_buckets: list[Bucket],
    test_buckets: list[Bucket],
    label: str,
) -> TemporalSplit:
    keys = _bucket_keys(df).to_numpy()
    train_set, test_set = set(train_buckets), set(test_buckets)
    train_index = np.flatnonzero([k in train_set for k in keys])
    test_index = np.flatnonzero([k in test_set for k in keys])
    if len(train_index) == 0 or len(test_index) == 0:
        raise InsufficientData(
            f"Split '{label}' has {len(train_index)} train and {len(test_index)} test rows."
        )
    split = TemporalSplit(
        train_index=train_index,
        test_index=test_index,
        train_buckets=tuple(train_buckets),
        test_buckets=tuple(test_buckets),
        label=label,
    )
    assert_no_leakage(df, split)
    return split


def assert_no_leakage(df: pd.DataFrame, split: TemporalSplit) -> None:
    """
    Raise LeakageRisk unless every test row's (season, week) sorts strictly
    after every train row's (season, week), and the partitions are disjoint.
    """
    keys = _bucket_keys(df).to_numpy()
    if len(np.intersect1d(split.train_index, split.test_index)):
        raise LeakageRisk(f"Split '{split.label}' shares rows between train and test.")
    latest_train = max(keys[i] for i in split.train_index)
    earliest_test = min(keys[i] for i in split.test_index)
    if not earliest_test > latest_train:
        raise LeakageRisk(
            f"Split '{split.label}': test bucket {earliest_test} does not follow "
            f"train bucket {latest_train}."
        )


def temporal_split(df: pd.DataFrame, train_fraction: float = 0.7) -> TemporalSplit:
    """
    Earliest ``floor(n_buckets * train_fraction)`` (season, week) buckets
    train, the rest test. Rows are never shuffled.
    """
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1); got {train_fraction}")
    buckets = season_week_buckets(df)
    n_train = int(math.floor(len(buckets) * train_fraction))
    split = _make_split(df, buckets[:n_train], buckets[n_train:], label="fraction")
    logger.info(
        "Temporal split: %d train weeks (%s..%s), %d test weeks (%s..%s); %d/%d games",
        len(split.train_buckets),
        split.train_buckets[0],
        split.train_buckets[-1],
        len(split.test_buckets),
        split.test_buckets[0],
        split.test_buckets[-1],
        len(split.train_index),
        len(split.test_index),
    )
    return split


def rolling_splits(
    df: pd.DataFrame,
    window_weeks: int,
    expanding: bool = False,
    min_train_weeks: int | None = None,
) -> list[TemporalSplit]:
    """
    Walk-forward folds, one test week each.

    rolling:   train on the ``window_weeks`` buckets immediately before the test week.
    expanding: train on every bucket before the test week, starting once at
               least ``min_train_weeks`` (default ``window_weeks``) exist.
    """
    if window_weeks < 1:
        raise ValueError("window_weeks must be >= 1")
    if min_train_weeks is None:
        min_train_weeks = window_weeks
    buckets = season_week_buckets(df)
    first_test = window_weeks if not expanding else max(min_train_weeks, 1)

    folds: list[TemporalSplit] = []
    for i in range(first_test, len(buckets)):
        start = 0 if expanding else i - window_weeks
        label = f"{'expanding' if expanding else 'rolling'}_{buckets[i][0]}_{buckets[i][1]:02d}"
        folds.append(_make_split(df, buckets[start:i], [buckets[i]], label=label))

    if not folds:
        raise InsufficientData(
            f"Need more than {first_test} weeks for walk-forward folds; have {len(buckets)}."
        )
    logger.info("Built %d %s folds", len(folds), "expanding" if expanding else "rolling")
    return folds


def split_by_season(
    df: pd.DataFrame,
    train_seasons: Iterable[int],
    val_seasons: Iterable[int] | None = None,
    test_seasons: Iterable[int] | None = None,
) -> tuple[pd.DataFrame, pd.DataFrame | None, pd.DataFrame | None]:
    """
    Split a DataFrame into train/val/test sets by season.

    Returns:
        (train_df, val_df, test_df) where val_df/test_df may be None.

    Raises:
        ValueError if seasons overlap between splits, or season column missing.
        LeakageRisk if a later split contains a season not after every
        earlier split's seasons.
    """
    if "season" not in df.columns:
        raise ValueError("DataFrame must contain a 'season' column for split_by_season.")

    train = _to_int_list(train_seasons)
    val = _to_int_list(val_seasons)
    test = _to_int_list(test_seasons)

    # Check for overlaps
    train_set, val_set, test_set = set(train), set(val), set(test)
    if (train_set & val_set) or (train_set & test_set) or (val_set & test_set):
        raise ValueError(
            f"Season sets must not overlap.\n"
            f"train={train_set}, val={val_set}, test={test_set}"
        )

    ordered = [s for s in (train, val, test) if s]
    for earlier, later in zip(ordered, ordered[1:]):
        if min(later) <= max(earlier):
            raise LeakageRisk(f"Seasons {later} do not all follow seasons {earlier}.")

    def _subset_for(season_list: list[int]) -> pd.DataFrame | None:
        if not season_list:
            return None
        return df[df["season"].isin(season_list)].copy()

    return _subset_for(train), _subset_for(val), _subset_for(test)


def season_split(
    df: pd.DataFrame,
    train_seasons: Iterable[int],
    test_seasons: Iterable[int],
) -> TemporalSplit:
    """TemporalSplit form of ``split_by_season`` (train and test only)."""
    split_by_season(df, train_seasons, test_seasons=test_seasons)
    buckets = season_week_buckets(df)
    train = set(_to_int_list(train_seasons))
    test = set(_to_int_list(test_seasons))
    return _make_split(
        df,
        [b for b in buckets if b[0] in train],
        [b for b in buckets if b[0] in test],
        label="season",
    )


def make_splits(df: pd.DataFrame, config: SplitConfig | None = None) -> list[TemporalSplit]:
    """Build the splits named by ``config.policy``."""
    if config is None:
        config = SPLIT_CONFIG

    if config.policy == "fraction":
        return [temporal_split(df, config.train_fraction)]
    if config.policy == "rolling":
        return rolling_splits(df, config.window_weeks, expanding=False)
    if config.policy == "expanding":
        return rolling_splits(
            df, config.window_weeks, expanding=True, min_train_weeks=config.min_train_weeks
        )
    if config.policy == "season":
        return [season_split(df, config.train_seasons, config.test_seasons)]
    raise ValueError(
        f"Unknown split policy: {config.policy}. "
        "Use 'fraction', 'rolling', 'expanding' or 'season'."
    )
