from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Base directory for the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class DataConfig:
    """Data storage paths and defaults."""

    raw_data_dir: Path = PROJECT_ROOT / "data" / "raw"
    processed_data_dir: Path = PROJECT_ROOT / "data" / "processed"
    features_dir: Path = PROJECT_ROOT / "data" / "features"
    cache_dir: Path = PROJECT_ROOT / "data" / "cache"
    default_seasons: Optional[List[int]] = None

    def __post_init__(self):
        if self.default_seasons is None:
            # Multi-season default; training code can override
            object.__setattr__(self, "default_seasons", list(range(2010, 2025)))


@dataclass(frozen=True)
class ModelConfig:
    """Model artifact storage."""

    artifacts_dir: Path = PROJECT_ROOT / "artifacts"


@dataclass(frozen=True)
class LogConfig:
    """Logging and results paths."""

    logs_dir: Path = PROJECT_ROOT / "logs"
    level: str = "INFO"
    fmt: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class EloConfig:
    """
    Elo rating engine parameters.

    Attributes
    ----------
    k:
        K-factor controlling the magnitude of each update.
    home_field_advantage:
        Rating points added to the home side when computing expectations
        and the published ``elo_diff``.
    base_rating:
        Seed rating for any team without an explicit seed.
    seed:
        ``"equal"`` (every team starts at ``base_rating``) or a mapping of
        team code to starting rating.
    """

    k: float = 20.0
    home_field_advantage: float = 65.0
    base_rating: float = 1500.0
    seed: Any = "equal"


@dataclass(frozen=True)
class MarketConfig:
    """Market baseline (spread -> probability) settings."""

    method: str = "isotonic"
    n_bins: int = 20
    min_bin_count: int = 5
    # "spread" uses the fitted baseline only; "moneyline" prefers de-vigged
    # moneylines where both sides are quoted.
    book_source: str = "spread"


@dataclass(frozen=True)
class SplitConfig:
    """Temporal split policy."""

    policy: str = "fraction"
    train_fraction: float = 0.7
    window_weeks: int = 17
    min_train_weeks: int = 17
    train_seasons: Tuple[int, ...] = ()
    test_seasons: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ClassifierConfig:
    """Gradient-boosted classifier search settings."""

    k_folds: int = 5
    # "expanding" or "rolling"; both train each fold on earlier weeks only.
    cv_scheme: str = "expanding"
    n_trials: int = 20
    n_jobs: int = 1
    max_rounds: int = 200
    early_stopping_rounds: int = 20
    rest_cap: int = 14


@dataclass(frozen=True)
class EdgeConfig:
    """Edge labelling and lift settings."""

    thresholds: Tuple[float, ...] = (0.03, 0.05, 0.07)
    n_bins: int = 10
    # Which out-of-fold predictions feed the labeler: "test", "train_oof" or "all".
    scope: str = "test"


@dataclass(frozen=True)
class PipelineConfig:
    """All values consumed by one edge-pipeline run."""

    elo: EloConfig = field(default_factory=EloConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    split: SplitConfig = field(default_factory=SplitConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    edge: EdgeConfig = field(default_factory=EdgeConfig)
    seed: int = 20251013

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build a config from a nested plain mapping, e.g.::

            PipelineConfig.from_mapping({"elo": {"k": 25}, "seed": 7})

        Unknown sections or keys raise ValueError.
        """
        sections = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in sections:
                raise ValueError(f"Unknown config section: {key}")
            if key == "seed":
                kwargs[key] = int(value)
                continue
            default = getattr(cls(), key)
            known = {f.name for f in fields(default)}
            unknown = set(value) - known
            if unknown:
                raise ValueError(f"Unknown keys for '{key}': {sorted(unknown)}")
            cleaned = {
                k: tuple(v) if isinstance(v, list) else v for k, v in value.items()
            }
            kwargs[key] = replace(default, **cleaned)
        return cls(**kwargs)


# Global config instances
DATA_CONFIG = DataConfig()
MODEL_CONFIG = ModelConfig()
LOG_CONFIG = LogConfig()
ELO_CONFIG = EloConfig()
MARKET_CONFIG = MarketConfig()
SPLIT_CONFIG = SplitConfig()
CLASSIFIER_CONFIG = ClassifierConfig()
EDGE_CONFIG = EdgeConfig()
PIPELINE_CONFIG = PipelineConfig()
