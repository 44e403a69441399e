"""
Edge Pipeline Run

Loads the Game table, runs the full edge pipeline (context, market
baseline, classifier, edge labels, lift), saves the run's tables under
artifacts/<run_id>/ and prints the headline comparison. Upcoming games,
if any, are scored with the final classifier.

Example:
    python run_edge_pipeline.py
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure src/ is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from nfl_edge.config import DATA_CONFIG, PIPELINE_CONFIG  # noqa: E402
from nfl_edge.data.preprocessing.base_dataset import (  # noqa: E402
    BaseDatasetConfig,
    build_base_dataset,
)
from nfl_edge.evaluation.monitor import check_drift  # noqa: E402
from nfl_edge.models.classifier import OutOfFoldPredictions  # noqa: E402
from nfl_edge.pipeline import register_result, run_edge_pipeline  # noqa: E402
from nfl_edge.serving.scoring import score_upcoming  # noqa: E402
from nfl_edge.utils.log import configure_logging  # noqa: E402


def main() -> None:
    print("=== NFL Edge: Pipeline Run ===")
    configure_logging(log_file="edge_pipeline.log")

    seasons = DATA_CONFIG.default_seasons
    config = PIPELINE_CONFIG

    try:
        games = build_base_dataset(BaseDatasetConfig(seasons=seasons, save_parquet=False))
        result = run_edge_pipeline(games, config)
    except Exception as exc:  # pragma: no cover - manual inspection script
        print("\nERROR while running the edge pipeline:\n")
        print(type(exc).__name__, ":", str(exc))
        return

    registry = register_result(result)
    run_dir = registry.save()
    print(f"\nRun {result.run_id} saved to {run_dir}")

    for split in result.splits[:3]:
        print(f"Split {split.label}: train through {split.boundary[0]}, test from {split.boundary[1]}")

    print("\n--- Overall (edge scope: %s) ---" % config.edge.scope)
    print(result.lift.overall.to_string(index=False))

    print("\n--- By |edge| decile ---")
    cols = ["edge_decile", "n", "mean_abs_edge", "mean_loss_delta", "model_logloss", "market_logloss"]
    print(result.lift.by_decile[cols].to_string(index=False))

    print("\n--- By threshold ---")
    print(result.lift.by_threshold.to_string(index=False))

    if result.importance is not None and not result.importance.empty:
        print("\n--- Feature importance (mean |SHAP|, last test fold) ---")
        print(result.importance.to_string(index=False))

    cv = result.classifiers[0].cv
    if cv is not None:
        reference = (
            cv.oof.to_frame()
            .dropna(subset=["prob_model_oof"])
            .merge(result.model_frame, on="game_id")
        )
        current = OutOfFoldPredictions.concat([c.test_oof for c in result.classifiers])
        current = current.to_frame().merge(result.model_frame, on="game_id")
        drift = check_drift(reference, current, features=["elo_diff", "spread_close"])
        print("\n--- Drift (train OOF vs test) ---")
        print(drift.metrics.to_string(index=False))
        print(drift.psi.to_string(index=False))
        print("Alerts:", drift.alerts or "none")

    upcoming = score_upcoming(games, result)
    if not upcoming.empty:
        print("\n--- Upcoming games ---")
        print(upcoming.to_string(index=False))

    print(f"\nRecoverable events: {result.tally.summary()}")
    print("\nDone.")


if __name__ == "__main__":
    main()
