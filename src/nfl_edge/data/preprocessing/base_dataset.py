from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pandas as pd

from nfl_edge.config import DATA_CONFIG
from nfl_edge.data.loaders.games import GameDataLoader, GameDataLoaderConfig
from nfl_edge.errors import SchemaViolation

logger = logging.getLogger(__name__)

REQUIRED_GAME_COLUMNS = [
    "game_id",
    "season",
    "week",
    "date",
    "home_team",
    "away_team",
    "home_score",
    "away_score",
]


@dataclass
class BaseDatasetConfig:
    """
    Configuration for building the canonical Game table.

    Attributes:
        seasons: List of seasons to include in the dataset.
        include_markets: Whether to keep spread/total/moneyline columns.
        include_unplayed: Keep games without scores (needed for scoring
            upcoming games; they never receive a rating update).
        save_parquet: If True, save the resulting dataset to data/processed/.
        filename: Optional custom filename for the saved dataset.
    """

    seasons: List[int]
    include_markets: bool = True
    include_unplayed: bool = True
    save_parquet: bool = True
    filename: Optional[str] = None


def validate_games(df: pd.DataFrame) -> None:
    """
    Structural checks on a Game table.

    Raises
    ------
    SchemaViolation
        Missing required columns, duplicate game_id, or a home_win column
        that is not defined exactly when both scores are present (or that
        disagrees with the scores).
    TypeError
        If ``date`` is not datetime64.
    """
    if df is None or len(df) == 0:
        raise SchemaViolation("Game table is empty.")

    missing = [c for c in REQUIRED_GAME_COLUMNS if c not in df.columns]
    if missing:
        raise SchemaViolation(f"Missing required columns in game table: {missing}")

    if not pd.api.types.is_datetime64_any_dtype(df["date"]):
        raise TypeError(f"Column 'date' must be datetime64; got dtype {df['date'].dtype}")

    duplicates = df.loc[df["game_id"].duplicated(keep=False), "game_id"]
    if not duplicates.empty:
        raise SchemaViolation(
            f"Found {duplicates.nunique()} duplicate game_ids "
            f"(e.g. {duplicates.iloc[0]!r}). Refusing to drop rows to fix a key collision."
        )

    if "home_win" in df.columns:
        played = df["home_score"].notna() & df["away_score"].notna()
        defined = df["home_win"].notna()
        if (played != defined).any():
            raise SchemaViolation(
                f"home_win must be defined iff both scores are present; "
                f"{int((played != defined).sum())} rows violate this."
            )
        expected = (df.loc[played, "home_score"] > df.loc[played, "away_score"]).astype(int)
        actual = df.loc[played, "home_win"].astype(int)
        if (expected != actual).any():
            raise SchemaViolation("home_win disagrees with home_score/away_score.")


def prepare_games(df: pd.DataFrame, include_unplayed: bool = True) -> pd.DataFrame:
    """
    Normalize a Game table for the feature engines.

    Steps:
        1. Coerce ``date`` to datetime.
        2. Derive ``home_win`` if absent (nullable; null for unplayed games).
        3. Optionally drop unplayed games.
        4. Sort by (date, game_id) and assign game_index = 0..N-1.
        5. Validate.
    """
    if "date" not in df.columns:
        raise SchemaViolation("Missing required columns in game table: ['date']")

    games = df.copy()
    games["date"] = pd.to_datetime(games["date"])

    if "home_win" not in games.columns and {"home_score", "away_score"} <= set(games.columns):
        played = games["home_score"].notna() & games["away_score"].notna()
        games["home_win"] = (
            (games["home_score"] > games["away_score"]).astype("Int64").where(played, pd.NA)
        )
    elif "home_win" in games.columns:
        games["home_win"] = games["home_win"].astype("Int64")

    validate_games(games)

    if not include_unplayed:
        games = games[games["home_win"].notna()].copy()
        if games.empty:
            raise SchemaViolation("No completed games in game table.")

    games = games.sort_values(["date", "game_id"], kind="mergesort").reset_index(drop=True)
    games["game_index"] = games.index  # 0..N-1 in time order
    return games


def build_base_dataset(config: Optional[BaseDatasetConfig] = None) -> pd.DataFrame:
    """
    Load, validate and sort the Game table.

    Returns one row per game with a chronological ``game_index``. Unplayed
    games are kept by default so the scorer can build pre-game features for
    them.
    """
    if config is None:
        config = BaseDatasetConfig(seasons=DATA_CONFIG.default_seasons)

    loader = GameDataLoader(
        GameDataLoaderConfig(
            seasons=config.seasons,
            include_markets=config.include_markets,
            save_parquet=False,
        )
    )
    games = prepare_games(loader.load(), include_unplayed=config.include_unplayed)
    logger.info("Base dataset: %d games", len(games))

    if config.save_parquet:
        DATA_CONFIG.processed_data_dir.mkdir(parents=True, exist_ok=True)
        start_season = min(config.seasons)
        end_season = max(config.seasons)
        filename = config.filename or f"base_games_{start_season}_{end_season}.parquet"
        games.to_parquet(DATA_CONFIG.processed_data_dir / filename, index=False)

    return games


def load_base_dataset(
    start_season: int,
    end_season: int,
    processed_dir: Optional[Path] = None,
) -> pd.DataFrame:
    """
    Load a previously built base dataset from parquet.

    Raises:
        FileNotFoundError: If dataset hasn't been built yet
        SchemaViolation: If required columns are missing
    """
    if processed_dir is None:
        processed_dir = DATA_CONFIG.processed_data_dir

    filepath = processed_dir / f"base_games_{start_season}_{end_season}.parquet"
    if not filepath.exists():
        raise FileNotFoundError(
            f"Base dataset not found: {filepath}\n"
            f"Run build_base_dataset() first with seasons {start_season}-{end_season}."
        )

    df = pd.read_parquet(filepath)
    missing = [c for c in REQUIRED_GAME_COLUMNS + ["game_index"] if c not in df.columns]
    if missing:
        raise SchemaViolation(f"Loaded dataset missing required columns: {missing}")
    return df
