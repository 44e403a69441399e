import numpy as np
import pandas as pd
import pytest

from nfl_edge.evaluation.monitor import MonitorThresholds, check_drift, psi


def _make_window(n: int, shift: float = 0.0, noise: float = 0.0, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    p = rng.uniform(0.2, 0.8, n)
    y = (rng.uniform(size=n) < p).astype(int)
    forecast = np.clip(p + rng.normal(0, noise, n), 0.01, 0.99) if noise else p
    return pd.DataFrame(
        {
            "home_win": y,
            "prob_model_oof": forecast,
            "elo_diff": rng.normal(65 + shift, 100, n),
        }
    )


def test_psi_identical_samples_is_zero():
    x = np.random.default_rng(1).normal(size=1000)
    assert psi(x, x) == pytest.approx(0.0, abs=1e-9)


def test_psi_grows_with_shift():
    rng = np.random.default_rng(2)
    expected = rng.normal(size=5000)
    small = psi(expected, rng.normal(0.1, 1, 5000))
    large = psi(expected, rng.normal(1.5, 1, 5000))

    assert small < 0.1
    assert large > 0.25


def test_psi_ignores_nan_and_handles_constant_reference():
    assert np.isnan(psi([np.nan], [1.0]))
    assert psi([1.0] * 10, [1.0] * 10) == pytest.approx(0.0, abs=1e-9)
    assert psi([1.0] * 10, [2.0] * 10) > 0.25


def test_check_drift_quiet_when_nothing_changes():
    reference = _make_window(4000, seed=3)
    current = _make_window(4000, seed=4)

    report = check_drift(reference, current, features=["elo_diff"])

    assert report.ok
    assert list(report.metrics["window"]) == ["reference", "current"]
    assert list(report.psi["feature"]) == ["elo_diff"]


def test_check_drift_flags_feature_shift_and_worse_forecasts():
    reference = _make_window(4000, seed=5)
    current = _make_window(4000, shift=250.0, noise=0.3, seed=6)

    report = check_drift(reference, current, features=["elo_diff"])

    assert not report.ok
    assert any("PSI" in a for a in report.alerts)
    assert any("Brier" in a for a in report.alerts)


def test_custom_thresholds():
    reference = _make_window(2000, seed=7)
    current = _make_window(2000, seed=8)

    report = check_drift(reference, current, features=[], thresholds=MonitorThresholds(brier_delta=-1.0))
    assert any("Brier" in a for a in report.alerts)
    assert report.psi.empty
