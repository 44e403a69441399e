"""
Quick Game Table Check

Run this script to verify that schedules load and validate into the
canonical Game table.

Example:
    python run_data_check.py
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from nfl_edge.data.preprocessing.base_dataset import (  # noqa: E402
    BaseDatasetConfig,
    build_base_dataset,
)
from nfl_edge.utils.log import configure_logging  # noqa: E402


def main():
    print("=== NFL Edge: Game Table Check ===")
    configure_logging()

    # Choose seasons here
    seasons = list(range(2020, 2024))
    print(f"Loading seasons: {seasons}")

    try:
        df = build_base_dataset(
            BaseDatasetConfig(seasons=seasons, include_markets=True, save_parquet=False)
        )

        print("\n--- Loaded Data Summary ---")
        print(f"Total games: {len(df)}")
        print(f"Unplayed games: {int(df['home_win'].isna().sum())}")
        print(f"Columns: {list(df.columns)}\n")

        print("--- Head (first 10 rows) ---")
        print(df.head(10).to_string())

        print("\n--- Closing spread vs home win rate ---")
        played = df[df["home_win"].notna()]
        favored = played["spread_close"] < 0
        print(f"Home favored:  {played.loc[favored, 'home_win'].astype(int).mean():.3f}")
        print(f"Home underdog: {played.loc[~favored, 'home_win'].astype(int).mean():.3f}")

        print("\n--- Data Types ---")
        print(df.dtypes)

        print("\nSuccess! Game table loaded and validated.")

    except Exception as e:
        print("\nERROR: Something went wrong while loading data.\n")
        print(type(e).__name__, ":", str(e))


if __name__ == "__main__":
    main()
