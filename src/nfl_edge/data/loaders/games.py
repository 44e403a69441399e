from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd

from nfl_edge.config import DATA_CONFIG
from nfl_edge.data.loaders.nflreadpy_client import NflreadpyClient, NflreadpyConfig

logger = logging.getLogger(__name__)


@dataclass
class GameDataLoaderConfig:
    """
    Configuration for the game-level data loader.

    Attributes:
        seasons: List of NFL seasons to load.
        save_parquet: If True, saves the canonical game table to data/raw/.
        include_markets: If True, keep closing spread/total and moneylines.
    """

    seasons: List[int]
    save_parquet: bool = True
    include_markets: bool = True


class GameDataLoader:
    """
    Load the canonical Game table from nflverse schedules.

    Output contract (one row per game):
    - game_id, season, week, date (datetime64)
    - home_team, away_team
    - home_score, away_score (null until played)
    - home_win (nullable Int64; null until played)
    - spread_close (home perspective, negative = home favored), total_close
    - home_moneyline, away_moneyline, game_type when available
    """

    BASE_COLS = [
        "game_id",
        "season",
        "week",
        "gameday",
        "game_type",
        "home_team",
        "away_team",
        "home_score",
        "away_score",
    ]

    MARKET_COLS = [
        "spread_line",
        "total_line",
        "home_moneyline",
        "away_moneyline",
    ]

    RENAMES = {
        "gameday": "date",
        "total_line": "total_close",
    }

    def __init__(
        self,
        config: Optional[GameDataLoaderConfig] = None,
        client: Optional[NflreadpyClient] = None,
    ):
        if config is None:
            config = GameDataLoaderConfig(seasons=DATA_CONFIG.default_seasons)
        if client is None:
            client = NflreadpyClient(NflreadpyConfig(seasons=config.seasons))
        self.config = config
        self.client = client

    def load(self) -> pd.DataFrame:
        """Load schedules and return the canonical Game table."""
        if not self.config.seasons:
            raise ValueError("At least one season must be provided to GameDataLoader.")

        schedules = self.client.load_schedules(seasons=self.config.seasons)
        if not isinstance(schedules, pd.DataFrame):
            raise TypeError("load_schedules did not return a pandas DataFrame.")

        games = self._build_games_table(schedules)
        logger.info(
            "Loaded %d games for seasons %s-%s (%d unplayed)",
            len(games),
            min(self.config.seasons),
            max(self.config.seasons),
            int(games["home_win"].isna().sum()),
        )

        if self.config.save_parquet:
            DATA_CONFIG.raw_data_dir.mkdir(parents=True, exist_ok=True)
            start_season = min(self.config.seasons)
            end_season = max(self.config.seasons)
            path = DATA_CONFIG.raw_data_dir / f"games_{start_season}_{end_season}.parquet"
            games.to_parquet(path, index=False)

        return games

    def _build_games_table(self, schedules: pd.DataFrame) -> pd.DataFrame:
        df = schedules.copy()

        if "gameday" not in df.columns:
            if "game_date" in df.columns:
                df = df.rename(columns={"game_date": "gameday"})
            else:
                raise KeyError("Could not find a 'gameday' or 'game_date' column in schedules.")

        keep_cols = list(self.BASE_COLS)
        if self.config.include_markets:
            keep_cols.extend(self.MARKET_COLS)
        keep_cols = [c for c in keep_cols if c in df.columns]
        df = df[keep_cols].rename(columns=self.RENAMES)
        df["date"] = pd.to_datetime(df["date"])

        # nflverse spread_line is the expected home margin (positive = home
        # favored); the Game contract uses the betting convention.
        if "spread_line" in df.columns:
            df["spread_close"] = -df.pop("spread_line").astype(float)

        self._add_outcome_inplace(df)

        col_order = [
            c
            for c in [
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
            ]
            if c in df.columns
        ]
        other_cols = [c for c in df.columns if c not in col_order]
        return df[col_order + other_cols]

    @staticmethod
    def _add_outcome_inplace(df: pd.DataFrame) -> None:
        """Add a nullable home_win column (null when either score is missing)."""
        required = ["home_score", "away_score"]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise KeyError(f"Missing score columns required for targets: {missing}")

        played = df["home_score"].notna() & df["away_score"].notna()
        home_win = (df["home_score"] > df["away_score"]).astype("Int64")
        df["home_win"] = home_win.where(played, pd.NA)
