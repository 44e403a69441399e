"""
Pre-game context features for the edge pipeline.

Responsibilities
----------------
- Elo ratings recorded before each game, updated only after it (elo).
- Rest days and previous-game margin per side (lag_features).
- One context row per game, joined 1:1 on game_id (context_builder).
- Capped / imputed model inputs joined with Game attributes (model_frame).

Usage example
-------------
    from nfl_edge.data.feature_engineering.context_builder import ContextBuilder

    context = ContextBuilder().build(games)
"""

# Intentionally keep this file light to avoid circular imports.
# Import concrete modules where you need them.
