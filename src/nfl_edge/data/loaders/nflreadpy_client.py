from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import pandas as pd

from nfl_edge.config import DATA_CONFIG

try:
    import nflreadpy as nflr
except ImportError as e:
    raise ImportError(
        "nflreadpy is required for nflreadpy-based loaders.\n"
        "Install with `pip install nflreadpy` or add it to pyproject.toml."
    ) from e


@dataclass
class NflreadpyConfig:
    """
    Configuration for nflreadpy-based data loading.

    Attributes
    ----------
    seasons:
        Seasons to load. If None, defaults to DATA_CONFIG.default_seasons.
    """

    seasons: Sequence[int] | None = None

    def resolved_seasons(self) -> list[int]:
        if self.seasons is None:
            return list(DATA_CONFIG.default_seasons or [])
        return list(self.seasons)


class NflreadpyClient:
    """
    Thin wrapper around nflreadpy that returns pandas DataFrames.

    nflreadpy returns Polars frames; everything downstream of this client
    works in pandas, so conversion happens here and only here.
    """

    def __init__(self, config: NflreadpyConfig | None = None) -> None:
        if config is None:
            config = NflreadpyConfig()
        self.config = config

    def load_schedules(self, seasons: Iterable[int] | None = None) -> pd.DataFrame:
        """
        Load schedules (results + closing lines) via nflreadpy.load_schedules.

        The nflverse schedule carries one row per game with scores (null for
        unplayed games), spread_line/total_line and moneylines.
        """
        seasons = list(seasons) if seasons is not None else self.config.resolved_seasons()
        if not seasons:
            raise ValueError("At least one season must be provided to load schedules.")
        pl_df = nflr.load_schedules(seasons=seasons)
        try:
            return pl_df.to_pandas()
        except AttributeError as e:
            raise TypeError(
                "nflreadpy.load_schedules did not return a Polars DataFrame as expected. "
                "Check nflreadpy version and docs."
            ) from e
