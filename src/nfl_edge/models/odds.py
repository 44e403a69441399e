"""
Moneyline conversions and de-vig helpers for a single book.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from nfl_edge.errors import WarningTally, warn_out_of_range

logger = logging.getLogger(__name__)


def american_to_prob(odds) -> np.ndarray:
    """
    Implied probability from American odds (vig included).

    Negative odds: |odds| / (|odds| + 100). Positive odds: 100 / (odds + 100).
    NaN stays NaN.
    """
    o = np.asarray(odds, dtype=float)
    return np.where(o < 0, -o / (-o + 100.0), 100.0 / (o + 100.0))


def american_to_decimal(odds) -> np.ndarray:
    """Decimal odds: odds/100 + 1 for positive, 100/|odds| + 1 for negative."""
    o = np.asarray(odds, dtype=float)
    return np.where(o < 0, 100.0 / -o + 1.0, o / 100.0 + 1.0)


def decimal_to_prob(decimal_odds) -> np.ndarray:
    """Implied probability (vig included) from decimal odds."""
    return 1.0 / np.asarray(decimal_odds, dtype=float)


def devig_additive(
    prob_home,
    prob_away,
    tally: WarningTally | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Remove half the overround from each side.

    Rows with a negative vig (the two sides sum below 1, an arbitrage-looking
    quote) are returned raw and counted as ``negative_vig``.
    """
    ph = np.asarray(prob_home, dtype=float)
    pa = np.asarray(prob_away, dtype=float)
    vig = ph + pa - 1.0
    negative = vig < 0
    warn_out_of_range(
        "negative_vig",
        int(np.sum(negative)),
        "Negative vig detected; returning raw probabilities",
        tally,
    )
    half = np.where(negative, 0.0, vig / 2.0)
    return np.clip(ph - half, 0.0, 1.0), np.clip(pa - half, 0.0, 1.0)


def devig_multiplicative(prob_home, prob_away) -> tuple[np.ndarray, np.ndarray]:
    """Normalize both sides so they sum to 1."""
    ph = np.asarray(prob_home, dtype=float)
    pa = np.asarray(prob_away, dtype=float)
    total = ph + pa
    return ph / total, pa / total


def prob_from_moneyline(
    ml_home,
    ml_away,
    devig: bool = True,
    tally: WarningTally | None = None,
) -> np.ndarray:
    """Home win probability from a pair of moneylines (additive de-vig by default)."""
    ph = american_to_prob(ml_home)
    if not devig:
        return ph
    pa = american_to_prob(ml_away)
    home, _ = devig_additive(ph, pa, tally)
    return home


def choose_book_prob(
    frame: pd.DataFrame,
    spread_prob,
    prefer_moneyline: bool = True,
    tally: WarningTally | None = None,
) -> pd.DataFrame:
    """
    Pick the book probability per row.

    Uses the de-vigged moneyline when both sides are quoted and
    ``prefer_moneyline`` is set, otherwise the spread-based baseline
    probability, otherwise NaN.

    Returns a frame with ``prob_book`` and ``book_source``
    ("moneyline", "spread" or None), aligned to ``frame``.
    """
    spread_prob = np.asarray(spread_prob, dtype=float)
    has_spread = ~np.isnan(spread_prob)

    if {"home_moneyline", "away_moneyline"} <= set(frame.columns):
        has_ml = (frame["home_moneyline"].notna() & frame["away_moneyline"].notna()).to_numpy()
    else:
        has_ml = np.zeros(len(frame), dtype=bool)

    prob = np.full(len(frame), np.nan)
    source = np.full(len(frame), None, dtype=object)

    if has_ml.any():
        ml = prob_from_moneyline(
            frame.loc[has_ml, "home_moneyline"],
            frame.loc[has_ml, "away_moneyline"],
            devig=True,
            tally=tally,
        )
        ml_full = np.full(len(frame), np.nan)
        ml_full[has_ml] = ml
    else:
        ml_full = np.full(len(frame), np.nan)

    use_ml = has_ml & (prefer_moneyline | ~has_spread)
    use_spread = ~use_ml & has_spread

    prob[use_ml] = ml_full[use_ml]
    source[use_ml] = "moneyline"
    prob[use_spread] = spread_prob[use_spread]
    source[use_spread] = "spread"

    return pd.DataFrame({"prob_book": prob, "book_source": source}, index=frame.index)
