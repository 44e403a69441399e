"""
Gradient-boosted home-win classifier behind a narrow interface.

The edge pipeline only needs three things from a model: fit on
(features, label), predict probabilities, and produce out-of-fold
predictions for the train partition. XGBoost is the default backend; any
object with ``fit``/``predict_proba`` can be plugged in through
``model_factory``.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from xgboost import DMatrix, XGBClassifier

from nfl_edge.config import CLASSIFIER_CONFIG, PIPELINE_CONFIG, ClassifierConfig
from nfl_edge.data.feature_engineering.model_frame import FEATURE_COLUMNS
from nfl_edge.errors import InsufficientData, NotFittedError, SchemaViolation
from nfl_edge.evaluation.metrics import log_loss
from nfl_edge.evaluation.splits import TemporalSplit, season_week_buckets

logger = logging.getLogger(__name__)

# Search space (small on purpose: 144 combinations, sampled). Boosting rounds
# are picked by early stopping on the CV folds, not by the grid.
PARAM_GRID: dict[str, tuple] = {
    "max_depth": (3, 5, 7),
    "learning_rate": (0.01, 0.05, 0.1),
    "min_child_weight": (1, 3),
    "subsample": (0.7, 0.9),
    "colsample_bytree": (0.7, 0.9),
    "reg_lambda": (0.0, 1.0),
}

CV_SCHEMES = ("expanding", "rolling")

TRAIN_OOF = "train_oof"
TEST = "test"


class BinaryClassifier(Protocol):
    def fit(self, X, y) -> Any: ...

    def predict_proba(self, X) -> np.ndarray: ...


class ConstantProbabilityModel:
    """Predicts the training base rate; used when a fold has a single class."""

    def __init__(self) -> None:
        self.rate_: float | None = None

    def fit(self, X, y) -> "ConstantProbabilityModel":
        self.rate_ = float(np.mean(y))
        return self

    def predict_proba(self, X) -> np.ndarray:
        if self.rate_ is None:
            raise NotFittedError("ConstantProbabilityModel has not been fit.")
        p = np.full(len(X), self.rate_)
        return np.column_stack([1.0 - p, p])


def make_xgb_classifier(params: Mapping[str, Any], seed: int) -> XGBClassifier:
    """XGBClassifier with a fixed seed and single-threaded training."""
    return XGBClassifier(
        objective="binary:logistic",
        eval_metric="logloss",
        tree_method="hist",
        random_state=seed,
        n_jobs=1,
        **params,
    )


def expand_grid(grid: Mapping[str, Sequence]) -> list[dict[str, Any]]:
    """Every combination of ``grid``, in a fixed (key-sorted) order."""
    keys = sorted(grid)
    return [dict(zip(keys, values)) for values in itertools.product(*(grid[k] for k in keys))]


def sample_param_trials(
    grid: Mapping[str, Sequence],
    n_trials: int,
    seed: int,
) -> list[dict[str, Any]]:
    """
    Sample ``n_trials`` distinct combinations without replacement.

    Pure given (grid, n_trials, seed): the same inputs always give the same
    ordered list.
    """
    combos = expand_grid(grid)
    n = min(int(n_trials), len(combos))
    rng = np.random.default_rng(seed)
    picks = rng.choice(len(combos), size=n, replace=False)
    return [combos[i] for i in picks]


def fit_model(
    X: np.ndarray,
    y: np.ndarray,
    params: Mapping[str, Any],
    seed: int,
    model_factory: Callable[[Mapping[str, Any], int], BinaryClassifier] = make_xgb_classifier,
    eval_set: tuple[np.ndarray, np.ndarray] | None = None,
) -> BinaryClassifier:
    """
    Fit one model; single-class targets fall back to the base rate.

    ``eval_set`` is only passed on to XGBoost, which records the per-round
    log loss on it (see ``validation_curve``). It does not change the fit.
    """
    if len(y) == 0:
        raise InsufficientData("Cannot fit a classifier on zero rows.")
    if len(np.unique(y)) < 2:
        logger.debug("Single-class training fold (%d rows); using constant model", len(y))
        return ConstantProbabilityModel().fit(X, y)
    model = model_factory(params, seed)
    if eval_set is not None and isinstance(model, XGBClassifier):
        model.fit(X, y, eval_set=[eval_set], verbose=False)
    else:
        model.fit(X, y)
    return model


def validation_curve(
    model: BinaryClassifier,
    X_valid: np.ndarray,
    y_valid: np.ndarray,
    n_rounds: int,
) -> np.ndarray | None:
    """
    Validation log loss after each boosting round, or None when the model
    does not boost. A constant model scores the same at every round.
    """
    if isinstance(model, ConstantProbabilityModel):
        return np.full(n_rounds, log_loss(y_valid, predict_proba(model, X_valid)))
    if isinstance(model, XGBClassifier):
        return np.asarray(model.evals_result()["validation_0"]["logloss"], dtype=float)
    return None


def early_stopping_round(curve: np.ndarray, patience: int) -> tuple[int, float]:
    """
    (rounds, loss) at the best round of ``curve``, scanning forward and
    stopping once ``patience`` rounds pass without improvement.
    """
    best_i, best = 0, float(curve[0])
    for i, value in enumerate(curve):
        if value < best:
            best_i, best = i, float(value)
        elif i - best_i >= patience:
            break
    return best_i + 1, best


def predict_proba(model: BinaryClassifier, X) -> np.ndarray:
    """P(home win) per row, clipped to [0, 1]."""
    return np.clip(np.asarray(model.predict_proba(X))[:, 1], 0.0, 1.0)


@dataclass(frozen=True)
class OutOfFoldPredictions:
    """
    Predictions for rows the producing model never trained on.

    ``partition`` is "train_oof" (cross-validation inside the train
    partition) or "test" (final model on the held-out partition). NaN
    probabilities mark rows with no out-of-fold prediction.
    """

    game_id: np.ndarray
    prob: np.ndarray
    partition: np.ndarray
    fold: np.ndarray

    def __post_init__(self):
        n = len(self.game_id)
        if not (len(self.prob) == len(self.partition) == len(self.fold) == n):
            raise SchemaViolation("OutOfFoldPredictions arrays must have equal length.")

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "game_id": self.game_id,
                "prob_model_oof": self.prob,
                "partition": self.partition,
                "fold": self.fold,
            }
        )

    def select(self, partition: str) -> "OutOfFoldPredictions":
        mask = self.partition == partition
        return OutOfFoldPredictions(
            self.game_id[mask], self.prob[mask], self.partition[mask], self.fold[mask]
        )

    @classmethod
    def concat(cls, parts: Sequence["OutOfFoldPredictions"]) -> "OutOfFoldPredictions":
        if not parts:
            raise InsufficientData("No out-of-fold predictions to combine.")
        oof = cls(
            np.concatenate([p.game_id for p in parts]),
            np.concatenate([p.prob for p in parts]),
            np.concatenate([p.partition for p in parts]),
            np.concatenate([p.fold for p in parts]),
        )
        if pd.Series(oof.game_id).duplicated().any():
            raise SchemaViolation("A game received more than one out-of-fold prediction.")
        return oof


def time_block_folds(
    frame: pd.DataFrame,
    k_folds: int,
    scheme: str = "expanding",
) -> list[tuple[np.ndarray, np.ndarray]]:
    """
    Split ``frame`` (the train partition) into contiguous (season, week) blocks.

    expanding: fold j validates on block j and trains on every block before it.
    rolling:   fold j validates on block j and trains on block j - 1 only.

    Training weeks always sort before validation weeks, so block 0 never
    gets an out-of-fold prediction. Blocks are never shuffled. Returns
    (train_positions, valid_positions) pairs.
    """
    if scheme not in CV_SCHEMES:
        raise ValueError(f"Unknown CV scheme: {scheme}. Use 'expanding' or 'rolling'.")
    buckets = season_week_buckets(frame)
    if len(buckets) < 2:
        raise InsufficientData("Need at least two weeks in the train partition for CV.")
    k = max(2, min(int(k_folds), len(buckets)))
    blocks = np.array_split(np.arange(len(buckets)), k)
    bucket_block = {buckets[i]: j for j, idx in enumerate(blocks) for i in idx}
    row_block = np.array(
        [bucket_block[(int(s), int(w))] for s, w in zip(frame["season"], frame["week"])]
    )

    folds = []
    for j in range(1, k):
        valid = np.flatnonzero(row_block == j)
        if scheme == "expanding":
            train = np.flatnonzero(row_block < j)
        else:
            train = np.flatnonzero(row_block == j - 1)
        folds.append((train, valid))
    return folds


def _oof_probs(
    X: np.ndarray,
    y: np.ndarray,
    folds: list[tuple[np.ndarray, np.ndarray]],
    params: Mapping[str, Any],
    seed: int,
    model_factory,
) -> tuple[np.ndarray, np.ndarray]:
    probs = np.full(len(y), np.nan)
    fold_id = np.full(len(y), -1)
    for j, (train, valid) in enumerate(folds):
        model = fit_model(X[train], y[train], params, seed, model_factory)
        probs[valid] = predict_proba(model, X[valid])
        fold_id[valid] = j
    return probs, fold_id


def _evaluate_trial(
    trial: int,
    params: Mapping[str, Any],
    X: np.ndarray,
    y: np.ndarray,
    folds: list[tuple[np.ndarray, np.ndarray]],
    seed: int,
    model_factory,
    max_rounds: int,
    patience: int,
) -> dict[str, Any]:
    fit_params = {**params, "n_estimators": max_rounds}
    probs = np.full(len(y), np.nan)
    curves = []
    for train, valid in folds:
        model = fit_model(
            X[train], y[train], fit_params, seed, model_factory, eval_set=(X[valid], y[valid])
        )
        probs[valid] = predict_proba(model, X[valid])
        curves.append(validation_curve(model, X[valid], y[valid], max_rounds))

    if all(c is not None for c in curves):
        # Mean fold curve, as xgb.cv reports it.
        n = min(len(c) for c in curves)
        best_iter, cv_logloss = early_stopping_round(
            np.vstack([c[:n] for c in curves]).mean(axis=0), patience
        )
    else:
        scored = ~np.isnan(probs)
        best_iter, cv_logloss = np.nan, log_loss(y[scored], probs[scored])
    return {"trial": trial, **params, "best_iter": best_iter, "cv_logloss": cv_logloss}


@dataclass(frozen=True)
class CrossValidationResult:
    best_params: dict[str, Any]
    best_trial: int
    trials: pd.DataFrame
    oof: OutOfFoldPredictions


@dataclass(frozen=True)
class ClassifierResult:
    model: BinaryClassifier
    params: dict[str, Any]
    features: tuple[str, ...]
    cv: CrossValidationResult | None
    test_oof: OutOfFoldPredictions

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        return predict_proba(self.model, X[list(self.features)].to_numpy(dtype=float))


def _matrix(frame: pd.DataFrame, features: Sequence[str]) -> tuple[np.ndarray, np.ndarray]:
    missing = [c for c in features if c not in frame.columns]
    if missing:
        raise SchemaViolation(f"Model frame missing feature columns: {missing}")
    if frame["home_win"].isna().any():
        raise SchemaViolation("Training rows must all have a home_win outcome.")
    return frame[list(features)].to_numpy(dtype=float), frame["home_win"].to_numpy(dtype=int)


@dataclass
class ClassifierAdapter:
    """
    Hyperparameter search, out-of-fold predictions and final fit.

    Typical usage
    -------------
        adapter = ClassifierAdapter(seed=20251013)
        result = adapter.run(model_frame, split)
        result.cv.oof        # train-partition OOF predictions
        result.test_oof      # held-out partition predictions
    """

    features: Sequence[str] = tuple(FEATURE_COLUMNS)
    config: ClassifierConfig = field(default_factory=lambda: CLASSIFIER_CONFIG)
    seed: int = PIPELINE_CONFIG.seed
    grid: Mapping[str, Sequence] = field(default_factory=lambda: dict(PARAM_GRID))
    cv_scheme: str = "expanding"
    model_factory: Callable[[Mapping[str, Any], int], BinaryClassifier] = make_xgb_classifier

    def cross_validate(
        self,
        frame: pd.DataFrame,
        split: TemporalSplit,
        trials: Sequence[Mapping[str, Any]] | None = None,
    ) -> CrossValidationResult:
        """
        Randomized search over forward-only time-block folds of the train
        partition.

        Each trial boosts up to ``config.max_rounds`` rounds and keeps the
        round count where the mean fold log loss stops improving. The winner
        has the lowest mean CV log loss; ties go to the earliest trial.
        Out-of-fold predictions are then produced with the winning
        parameters for every train row after the first block; first-block
        rows keep a NaN probability.
        """
        if not isinstance(split, TemporalSplit):
            raise TypeError("cross_validate() requires a TemporalSplit.")
        train = split.train_frame(frame)
        X, y = _matrix(train, self.features)
        folds = time_block_folds(train, self.config.k_folds, self.cv_scheme)

        if trials is None:
            trials = sample_param_trials(self.grid, self.config.n_trials, self.seed)
        if not trials:
            raise InsufficientData("No hyperparameter trials to evaluate.")

        logger.info(
            "Randomized search: %d trials x %d folds on %d train games",
            len(trials),
            len(folds),
            len(train),
        )
        results = Parallel(n_jobs=self.config.n_jobs)(
            delayed(_evaluate_trial)(
                i,
                dict(p),
                X,
                y,
                folds,
                self.seed,
                self.model_factory,
                self.config.max_rounds,
                self.config.early_stopping_rounds,
            )
            for i, p in enumerate(trials)
        )
        table = pd.DataFrame(results).sort_values("trial").reset_index(drop=True)
        best_pos = int(np.argmin(table["cv_logloss"].to_numpy()))  # first minimum wins
        best_trial = int(table.loc[best_pos, "trial"])
        best_params = dict(trials[best_trial])
        best_iter = table.loc[best_pos, "best_iter"]
        if not pd.isna(best_iter):
            best_params["n_estimators"] = int(best_iter)
        logger.info(
            "Best trial %d: CV logloss %.4f, params %s",
            best_trial,
            table.loc[best_pos, "cv_logloss"],
            best_params,
        )

        probs, fold_id = _oof_probs(X, y, folds, best_params, self.seed, self.model_factory)
        oof = OutOfFoldPredictions(
            game_id=train["game_id"].to_numpy(),
            prob=probs,
            partition=np.full(len(train), TRAIN_OOF, dtype=object),
            fold=fold_id,
        )
        return CrossValidationResult(best_params, best_trial, table, oof)

    def fit(self, frame: pd.DataFrame, split: TemporalSplit, params: Mapping[str, Any]) -> BinaryClassifier:
        """Final model on the whole train partition."""
        if not isinstance(split, TemporalSplit):
            raise TypeError("fit() requires a TemporalSplit.")
        X, y = _matrix(split.train_frame(frame), self.features)
        return fit_model(X, y, params, self.seed, self.model_factory)

    def predict_holdout(
        self,
        model: BinaryClassifier,
        frame: pd.DataFrame,
        split: TemporalSplit,
    ) -> OutOfFoldPredictions:
        """Predictions on the test partition, which the model never saw."""
        test = split.test_frame(frame)
        X = test[list(self.features)].to_numpy(dtype=float)
        return OutOfFoldPredictions(
            game_id=test["game_id"].to_numpy(),
            prob=predict_proba(model, X),
            partition=np.full(len(test), TEST, dtype=object),
            fold=np.full(len(test), -1),
        )

    def run(
        self,
        frame: pd.DataFrame,
        split: TemporalSplit,
        params: Mapping[str, Any] | None = None,
    ) -> ClassifierResult:
        """
        Search (unless ``params`` is given), fit on train, predict test.
        """
        cv = None
        if params is None:
            cv = self.cross_validate(frame, split)
            params = cv.best_params
        model = self.fit(frame, split, params)
        test_oof = self.predict_holdout(model, frame, split)
        return ClassifierResult(
            model=model,
            params=dict(params),
            features=tuple(self.features),
            cv=cv,
            test_oof=test_oof,
        )


def shap_contributions(result: ClassifierResult, frame: pd.DataFrame) -> pd.DataFrame:
    """
    Per-game SHAP contributions (log-odds scale) from the XGBoost booster.

    One column per feature plus ``bias``; each row sums to the model's
    log-odds for that game. Models without a booster (the constant
    fallback, plug-in backends) give an empty frame.
    """
    columns = ["game_id", *result.features, "bias"]
    if not isinstance(result.model, XGBClassifier):
        logger.info("No SHAP contributions for %s", type(result.model).__name__)
        return pd.DataFrame(columns=columns)
    X = frame[list(result.features)].to_numpy(dtype=float)
    contribs = result.model.get_booster().predict(DMatrix(X), pred_contribs=True)
    out = pd.DataFrame(contribs, columns=[*result.features, "bias"])
    out.insert(0, "game_id", frame["game_id"].to_numpy())
    return out


def feature_importance(result: ClassifierResult, frame: pd.DataFrame) -> pd.DataFrame:
    """Global importance: mean |SHAP| per feature, largest first."""
    contribs = shap_contributions(result, frame)
    if contribs.empty:
        return pd.DataFrame(
            {"feature": pd.Series(dtype=object), "mean_abs_shap": pd.Series(dtype=float)}
        )
    importance = pd.DataFrame(
        {
            "feature": list(result.features),
            "mean_abs_shap": contribs[list(result.features)].abs().mean().to_numpy(),
        }
    )
    return importance.sort_values("mean_abs_shap", ascending=False, kind="mergesort").reset_index(
        drop=True
    )
