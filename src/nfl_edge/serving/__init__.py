"""Scoring of upcoming fixtures with a finished pipeline run.

Nothing is executed at import time; import ``nfl_edge.serving.scoring``
directly.
"""

__all__: list[str] = []
