"""
End-to-end edge research run.

    games -> context (Elo + lags) -> model frame -> temporal splits
          -> per split {market baseline, classifier} on train only
          -> edge labels on out-of-fold predictions -> lift report

Every stage is a plain function call on DataFrames; any exception stops
the run before later stages execute.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Mapping

import pandas as pd

from nfl_edge.artifacts import ArtifactRegistry, make_run_id
from nfl_edge.config import PIPELINE_CONFIG, PipelineConfig
from nfl_edge.data.feature_engineering.context_builder import ContextBuilder
from nfl_edge.data.feature_engineering.model_frame import FEATURE_COLUMNS, build_model_frame
from nfl_edge.data.preprocessing.base_dataset import prepare_games
from nfl_edge.errors import InsufficientData, WarningTally
from nfl_edge.evaluation.edges import label_edges, summarise_edges_by_season
from nfl_edge.evaluation.lift import LiftReport, aggregate
from nfl_edge.evaluation.splits import TemporalSplit, make_splits
from nfl_edge.models.classifier import (
    BinaryClassifier,
    ClassifierAdapter,
    ClassifierResult,
    OutOfFoldPredictions,
    feature_importance,
    make_xgb_classifier,
)
from nfl_edge.models.market_baseline import MarketBaseline
from nfl_edge.models.odds import choose_book_prob

logger = logging.getLogger(__name__)

EDGE_SCOPES = ("test", "train_oof", "all")


@dataclass
class PipelineResult:
    run_id: str
    config: PipelineConfig
    games: pd.DataFrame
    context: pd.DataFrame
    model_frame: pd.DataFrame
    splits: list[TemporalSplit]
    baselines: list[MarketBaseline]
    classifiers: list[ClassifierResult]
    market_probs: pd.Series
    edges: pd.DataFrame
    lift: LiftReport
    importance: pd.DataFrame | None = None
    tally: WarningTally = field(default_factory=WarningTally)
    context_builder: ContextBuilder | None = None

    @property
    def classifier(self) -> ClassifierResult:
        """Classifier trained on the most recent train partition."""
        return self.classifiers[-1]

    @property
    def baseline(self) -> MarketBaseline:
        return self.baselines[-1]


def book_probabilities(
    frame: pd.DataFrame,
    baseline: MarketBaseline,
    book_source: str = "spread",
    tally: WarningTally | None = None,
) -> pd.Series:
    """
    Book home-win probability per game, indexed by game_id.

    "spread" uses the fitted baseline only; "moneyline" prefers the
    de-vigged moneyline and falls back to the baseline.
    """
    spread_prob = baseline.predict(frame["spread_close"], tally)
    if book_source == "spread":
        prob = spread_prob
    elif book_source == "moneyline":
        prob = choose_book_prob(frame, spread_prob, prefer_moneyline=True, tally=tally)[
            "prob_book"
        ].to_numpy()
    else:
        raise ValueError(f"Unknown book_source: {book_source}. Use 'spread' or 'moneyline'.")
    return pd.Series(prob, index=frame["game_id"].to_numpy(), name="prob_book")


def _select_oof(
    scope: str,
    classifiers: list[ClassifierResult],
) -> OutOfFoldPredictions:
    tests = [c.test_oof for c in classifiers]
    train_oof = classifiers[0].cv.oof if classifiers[0].cv is not None else None

    if scope == "test":
        return OutOfFoldPredictions.concat(tests)
    if train_oof is None:
        raise InsufficientData("No train-partition OOF predictions were produced.")
    if scope == "train_oof":
        return train_oof
    return OutOfFoldPredictions.concat([train_oof, *tests])


def run_edge_pipeline(
    games: pd.DataFrame,
    config: PipelineConfig | None = None,
    initial_ratings: Mapping[str, float] | None = None,
    model_factory: Callable[[Mapping[str, Any], int], BinaryClassifier] = make_xgb_classifier,
    tally: WarningTally | None = None,
) -> PipelineResult:
    """
    Run the full research pipeline on a Game table.

    Parameters
    ----------
    games:
        Game table (played and unplayed rows); only played games are used
        for fitting and evaluation.
    config:
        Run settings. Defaults to PIPELINE_CONFIG.
    initial_ratings:
        Optional Elo seed per team, overriding ``config.elo.seed``.
    model_factory:
        Classifier constructor ``(params, seed) -> model``; XGBoost by default.

    Returns
    -------
    PipelineResult
    """
    if config is None:
        config = PIPELINE_CONFIG
    if config.edge.scope not in EDGE_SCOPES:
        raise ValueError(f"Unknown edge scope: {config.edge.scope}. Use one of {EDGE_SCOPES}.")
    if tally is None:
        tally = WarningTally()
    run_id = make_run_id()
    logger.info("Edge pipeline run %s starting on %d games", run_id, len(games))

    prepared = prepare_games(games)
    builder = ContextBuilder(elo_config=config.elo, initial_ratings=initial_ratings)
    context = builder.build(prepared)
    model_frame = build_model_frame(prepared, context, config.classifier.rest_cap, tally)

    completed = model_frame[model_frame["home_win"].notna()].reset_index(drop=True)
    if completed.empty:
        raise InsufficientData("No completed games to train on.")
    completed["home_win"] = completed["home_win"].astype(int)

    # Moneylines live on the Game table only.
    ml_cols = [c for c in ("home_moneyline", "away_moneyline") if c in prepared.columns]
    if ml_cols:
        completed = completed.merge(prepared[["game_id", *ml_cols]], on="game_id", how="left")

    splits = make_splits(completed, config.split)

    adapter = ClassifierAdapter(
        features=tuple(FEATURE_COLUMNS),
        config=config.classifier,
        seed=config.seed,
        cv_scheme=config.classifier.cv_scheme,
        model_factory=model_factory,
    )

    baselines: list[MarketBaseline] = []
    classifiers: list[ClassifierResult] = []
    market: dict[Any, float] = {}
    in_sample: set = set()
    params = None
    for i, split in enumerate(splits):
        baseline = MarketBaseline.from_config(config.market).fit(completed, split)
        # Walk-forward folds reuse the first fold's search result.
        result = adapter.run(completed, split, params)
        params = result.params

        if i == 0:
            # Train rows get the baseline fit on themselves; flagged in the edges.
            train = split.train_frame(completed)
            market.update(book_probabilities(train, baseline, config.market.book_source).to_dict())
            in_sample.update(train["game_id"])
        test = split.test_frame(completed)
        market.update(
            book_probabilities(test, baseline, config.market.book_source, tally).to_dict()
        )
        in_sample.difference_update(test["game_id"])

        baselines.append(baseline)
        classifiers.append(result)

    if len(splits) > 1:
        logger.info("Walk-forward: %d folds, params from first fold %s", len(splits), params)

    market_probs = pd.Series(market, name="prob_book", dtype=float)
    oof = _select_oof(config.edge.scope, classifiers)
    edges = label_edges(
        completed, oof, market_probs, config.edge.thresholds, tally, book_in_sample=in_sample
    )
    if edges.empty:
        raise InsufficientData("Edge labeler produced no rows.")
    n_in_sample = int(edges["book_in_sample"].sum())
    if n_in_sample:
        logger.info("%d edge records use an in-sample book probability", n_in_sample)
    lift = aggregate(edges, config.edge.n_bins, config.edge.thresholds)
    importance = feature_importance(classifiers[-1], splits[-1].test_frame(completed))

    if tally.summary():
        logger.info("Recoverable events: %s", tally.summary())
    logger.info("Edge pipeline run %s finished: %d edge records", run_id, len(edges))

    return PipelineResult(
        run_id=run_id,
        config=config,
        games=prepared,
        context=context,
        model_frame=model_frame,
        splits=splits,
        baselines=baselines,
        classifiers=classifiers,
        market_probs=market_probs,
        edges=edges,
        lift=lift,
        importance=importance,
        tally=tally,
        context_builder=builder,
    )


def register_result(result: PipelineResult, registry: ArtifactRegistry | None = None) -> ArtifactRegistry:
    """Put the tables of a run into an ArtifactRegistry keyed by the run id."""
    if registry is None:
        registry = ArtifactRegistry(run_id=result.run_id)
    registry.metadata.update(
        {
            "config": asdict(result.config),
            "splits": [
                {
                    "label": s.label,
                    "train_end": list(s.boundary[0]),
                    "test_start": list(s.boundary[1]),
                    "n_train": int(len(s.train_index)),
                    "n_test": int(len(s.test_index)),
                }
                for s in result.splits
            ],
            "classifier_params": result.classifier.params,
            "warnings": result.tally.summary(),
        }
    )
    registry.register("context", result.context)
    registry.register("model_frame", result.model_frame)
    registry.register("edges", result.edges)
    registry.register("edges_by_season", summarise_edges_by_season(result.edges, result.config.edge.thresholds))
    registry.register("lift_by_decile", result.lift.by_decile)
    registry.register("lift_by_season", result.lift.by_season)
    registry.register("lift_by_season_week", result.lift.by_season_week)
    registry.register("lift_by_threshold", result.lift.by_threshold)
    registry.register("cumulative_gain", result.lift.cumulative_gain)
    registry.register("overall", result.lift.overall)
    if result.classifiers[0].cv is not None:
        registry.register("cv_trials", result.classifiers[0].cv.trials)
    if result.importance is not None:
        registry.register("feature_importance", result.importance)
    return registry
