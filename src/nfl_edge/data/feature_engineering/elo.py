"""
Leak-free Elo ratings.

The engine is a fold over games in (date, game_id) order: the rating map is
an explicit argument and return value, never module state. For every game
the *pre-game* ratings are recorded as features and only then is the map
updated with the result. Games without a score (upcoming fixtures) still
receive features but leave the map untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from nfl_edge.config import ELO_CONFIG, EloConfig
from nfl_edge.errors import SchemaViolation

logger = logging.getLogger(__name__)

ELO_COLUMNS = ["game_id", "elo_home", "elo_away", "elo_diff"]


@dataclass(frozen=True)
class EloResult:
    """Output of ``run_elo``: final ratings plus one feature row per game."""

    ratings: dict[str, float]
    features: pd.DataFrame


def init_ratings(
    teams: Iterable[str],
    seed: str | Mapping[str, float] = "equal",
    base: float = 1500.0,
) -> dict[str, float]:
    """
    Initial ratings for ``teams``.

    ``seed="equal"`` gives every team ``base``. A mapping supplies explicit
    starting ratings; teams missing from it start at ``base``.
    """
    teams = sorted(set(teams))
    if isinstance(seed, str):
        if seed != "equal":
            raise ValueError(f"Unknown Elo seed policy: {seed!r}. Use 'equal' or a mapping.")
        return {team: float(base) for team in teams}
    return {team: float(seed.get(team, base)) for team in teams}


def expected_home_prob(elo_home: float, elo_away: float, hfa: float = 65.0) -> float:
    """Logistic expected score for the home side, HFA included."""
    diff = elo_home - elo_away + hfa
    return 1.0 / (1.0 + 10.0 ** (-diff / 400.0))


def update_elo(
    elo_home: float,
    elo_away: float,
    home_win: float,
    k: float = 20.0,
    hfa: float = 65.0,
) -> tuple[float, float]:
    """
    One rating update. The home and away deltas are equal and opposite.

    ``home_win`` is the home side's actual score (1 or 0).
    """
    expected = expected_home_prob(elo_home, elo_away, hfa)
    change = k * (float(home_win) - expected)
    return elo_home + change, elo_away - change


def run_elo(
    games: pd.DataFrame,
    initial_ratings: Mapping[str, float] | None = None,
    config: EloConfig | None = None,
) -> EloResult:
    """
    Compute pre-game Elo features for every game.

    Parameters
    ----------
    games:
        Game table with game_id, date, home_team, away_team, home_win.
        Any row order is accepted; iteration is by (date, game_id).
    initial_ratings:
        Starting map. Defaults to ``init_ratings`` over all teams seen in
        ``games`` using ``config.seed``. Not mutated.
    config:
        EloConfig (K, HFA, seed policy, base rating).

    Returns
    -------
    EloResult
        ``ratings``: the map after the last scored game.
        ``features``: game_id, elo_home, elo_away, elo_diff in the same row
        order as ``games``.
    """
    if config is None:
        config = ELO_CONFIG

    required = ["game_id", "date", "home_team", "away_team", "home_win"]
    missing = [c for c in required if c not in games.columns]
    if missing:
        raise SchemaViolation(f"Elo engine missing required columns: {missing}")

    k = float(config.k)
    hfa = float(config.home_field_advantage)

    if initial_ratings is None:
        teams = pd.concat([games["home_team"], games["away_team"]]).dropna().unique()
        ratings = init_ratings(teams, seed=config.seed, base=config.base_rating)
    else:
        ratings = dict(initial_ratings)

    ordered = games.sort_values(["date", "game_id"], kind="mergesort")
    elo_home = np.empty(len(ordered))
    elo_away = np.empty(len(ordered))
    skipped = 0

    for i, row in enumerate(ordered[["home_team", "away_team", "home_win"]].itertuples(index=False)):
        home, away, result = row
        r_home = ratings.get(home, float(config.base_rating))
        r_away = ratings.get(away, float(config.base_rating))

        # store pre-game Elo
        elo_home[i] = r_home
        elo_away[i] = r_away

        if pd.isna(result):
            skipped += 1
            continue

        ratings[home], ratings[away] = update_elo(r_home, r_away, result, k=k, hfa=hfa)

    features = pd.DataFrame(
        {
            "game_id": ordered["game_id"].to_numpy(),
            "elo_home": elo_home,
            "elo_away": elo_away,
        },
        index=ordered.index,
    )
    features["elo_diff"] = features["elo_home"] - features["elo_away"] + hfa
    features = features.loc[games.index].reset_index(drop=True)

    if skipped:
        logger.info("Elo: %d unscored games received pre-game ratings only", skipped)

    return EloResult(ratings=ratings, features=features[ELO_COLUMNS])
