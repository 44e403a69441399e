import numpy as np
import pytest
from sklearn.linear_model import LogisticRegression

from nfl_edge.config import PipelineConfig
from nfl_edge.errors import WarningTally
from nfl_edge.pipeline import run_edge_pipeline
from nfl_edge.serving.scoring import SCORE_COLUMNS, score_upcoming


def _logit_factory(params, seed):
    return LogisticRegression(max_iter=2000)


@pytest.fixture
def games_with_fixtures(make_games):
    # week 10 of 2022 plus two week-9 games are unplayed
    return make_games(n_unplayed=6)


@pytest.fixture
def run_result(games_with_fixtures):
    config = PipelineConfig.from_mapping({"classifier": {"k_folds": 3, "n_trials": 2}})
    return run_edge_pipeline(games_with_fixtures, config, model_factory=_logit_factory)


def test_score_upcoming_rows(run_result, games_with_fixtures):
    scored = score_upcoming(games_with_fixtures, run_result, tally=WarningTally())

    assert set(scored["game_id"]) == set(games_with_fixtures["game_id"].iloc[-6:])
    for col in SCORE_COLUMNS + ["off_flag_003", "off_flag_005", "off_flag_007"]:
        assert col in scored.columns
    assert scored["prob_model"].between(0, 1).all()
    assert scored["prob_book"].notna().all()
    np.testing.assert_allclose(scored["edge"], scored["prob_model"] - scored["prob_book"])


def test_score_upcoming_imputes_unknown_previous_margins(run_result, games_with_fixtures):
    tally = WarningTally()
    score_upcoming(games_with_fixtures, run_result, tally=tally)

    # 8 first games in week 1, plus 4 week-10 sides whose week-9 game is unplayed
    assert tally["feature_imputed"] == 12


def test_score_upcoming_matches_pipeline_features(run_result, games_with_fixtures):
    scored = score_upcoming(games_with_fixtures, run_result, tally=WarningTally())
    frame = run_result.model_frame.set_index("game_id").loc[scored["game_id"]]

    expected = run_result.classifier.predict(frame)
    np.testing.assert_allclose(scored["prob_model"], expected)


def test_score_upcoming_with_nothing_pending(run_result, make_games):
    scored = score_upcoming(make_games(), run_result, tally=WarningTally())

    assert scored.empty
    assert "prob_model" in scored.columns
