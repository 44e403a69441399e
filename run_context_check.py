"""
Quick Context Check (Elo + lag features)

Builds the context table and model frame for a few recent seasons and
prints sanity checks: one row per game, first games flagged, and home
Elo favorites winning more often than not.

Example:
    python run_context_check.py
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure src/ is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from nfl_edge.config import DATA_CONFIG  # noqa: E402
from nfl_edge.data.feature_engineering.context_builder import ContextBuilder  # noqa: E402
from nfl_edge.data.feature_engineering.model_frame import (  # noqa: E402
    FEATURE_COLUMNS,
    build_model_frame,
)
from nfl_edge.data.preprocessing.base_dataset import (  # noqa: E402
    BaseDatasetConfig,
    build_base_dataset,
)
from nfl_edge.errors import WarningTally  # noqa: E402
from nfl_edge.utils.log import configure_logging  # noqa: E402


def main() -> None:
    print("▶ Running context check...\n")
    configure_logging()

    seasons = DATA_CONFIG.default_seasons[-5:]

    try:
        games = build_base_dataset(BaseDatasetConfig(seasons=seasons, save_parquet=False))
        builder = ContextBuilder()
        context = builder.build(games)
        tally = WarningTally()
        frame = build_model_frame(games, context, tally=tally)
    except Exception as exc:  # pragma: no cover - manual inspection script
        print("\n❌ ERROR while building context:\n")
        print(type(exc).__name__, ":", str(exc))
        return

    print("✅ Context built successfully.")
    print(f"Seasons: {seasons[0]}–{seasons[-1]}")
    print(f"Games: {len(games)}  Context rows: {len(context)}\n")

    assert len(context) == len(games), "Context must be 1:1 with games."
    assert context["game_id"].is_unique, "game_id should be unique per row."

    played = frame[frame["home_win"].notna()]
    elo_fav = played["elo_diff"] > 0
    print("--- Elo sanity ---")
    print(f"Home win rate when Elo favors home: {played.loc[elo_fav, 'home_win'].astype(int).mean():.3f}")
    print(f"Home win rate otherwise:            {played.loc[~elo_fav, 'home_win'].astype(int).mean():.3f}")

    print("\n--- Final ratings (top 5) ---")
    top = sorted(builder.last_elo.ratings.items(), key=lambda kv: kv[1], reverse=True)[:5]
    for team, rating in top:
        print(f"{team:>4} {rating:7.1f}")

    print("\n--- Model frame sample ---")
    print(frame[["game_id", "season", "week"] + FEATURE_COLUMNS].head().to_string())

    print(f"\nImputed values: {tally.summary()}")
    print("\nDone.")


if __name__ == "__main__":
    main()
