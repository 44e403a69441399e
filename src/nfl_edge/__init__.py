"""
nfl_edge

Research pipeline that measures where a home-win classifier disagrees
with the betting market.

Structure:
- data: game table loading, preprocessing, Elo and lag features
- models: market baseline, odds helpers, classifier adapter
- evaluation: temporal splits, edge labels, lift, metrics, drift checks
- serving: scoring of upcoming games
- utils: logging setup
"""

__all__ = ["config"]
