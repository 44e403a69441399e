"""
Error taxonomy for the edge pipeline.

Fatal errors (SchemaViolation, InsufficientData, LeakageRisk) abort the
enclosing stage and everything downstream of it. Recoverable problems are
emitted once per call as an ``OutOfRangeInput`` warning and counted in a
``WarningTally`` so a run summary can report how many rows were touched.
"""

from __future__ import annotations

import logging
import warnings
from collections import Counter
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class NflEdgeError(Exception):
    """Base class for pipeline errors."""


class SchemaViolation(NflEdgeError, ValueError):
    """Missing columns, duplicate keys or a broken 1:1 join."""


class InsufficientData(NflEdgeError, ValueError):
    """A stage has nothing valid left to fit on."""


class LeakageRisk(NflEdgeError, ValueError):
    """Future information could reach a fit, or predictions are not out-of-fold."""


class NotFittedError(NflEdgeError, RuntimeError):
    """An estimator was queried before being fit."""


class OutOfRangeInput(UserWarning):
    """Recoverable input problem that was clipped or replaced by a default."""


@dataclass
class WarningTally:
    """Counts of recoverable events, keyed by kind."""

    counts: Counter = field(default_factory=Counter)

    def add(self, kind: str, n: int = 1) -> None:
        if n:
            self.counts[kind] += int(n)

    def __getitem__(self, kind: str) -> int:
        return self.counts.get(kind, 0)

    def summary(self) -> dict[str, int]:
        return dict(sorted(self.counts.items()))


def warn_out_of_range(
    kind: str,
    n: int,
    message: str,
    tally: WarningTally | None = None,
) -> None:
    """Emit one warning for ``n`` affected rows and record it in ``tally``."""
    if n <= 0:
        return
    if tally is not None:
        tally.add(kind, n)
    logger.warning("%s (%d rows)", message, n)
    warnings.warn(f"{message} ({n} rows)", OutOfRangeInput, stacklevel=3)
