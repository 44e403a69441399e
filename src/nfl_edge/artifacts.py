"""
Run-scoped artifact storage.

Each pipeline run writes its tables to ``<root>/<run_id>/`` as parquet
files alongside a ``manifest.json`` listing row counts, column schemas and
creation time. Runs are always addressed by explicit run id; nothing here
looks for the "latest" file in a directory.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import pandas as pd

from nfl_edge.config import MODEL_CONFIG
from nfl_edge.errors import SchemaViolation

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


def make_run_id(now: datetime | None = None) -> str:
    """UTC timestamp run id, e.g. '20251013T154500Z'."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def schema_hash(df: pd.DataFrame) -> str:
    """sha1 over the ordered (column, dtype) pairs."""
    text = "|".join(f"{col}:{dtype}" for col, dtype in df.dtypes.items())
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


class ArtifactRegistry:
    """
    Collects named DataFrames for one run and persists them together.

    Typical usage
    -------------
        registry = ArtifactRegistry()
        registry.register("edges", edges_df)
        run_dir = registry.save()
        ...
        registry = ArtifactRegistry.load(run_dir)
        edges_df = registry.get("edges")
    """

    def __init__(
        self,
        root: Path | str | None = None,
        run_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self.root = Path(root) if root is not None else MODEL_CONFIG.artifacts_dir
        self.run_id = run_id or make_run_id()
        self.metadata: dict[str, Any] = dict(metadata or {})
        self._frames: dict[str, pd.DataFrame] = {}

    @property
    def run_dir(self) -> Path:
        return self.root / self.run_id

    @property
    def names(self) -> list[str]:
        return list(self._frames)

    def register(self, name: str, frame: pd.DataFrame, overwrite: bool = False) -> None:
        if not isinstance(frame, pd.DataFrame):
            raise TypeError(f"Artifact '{name}' must be a pandas DataFrame.")
        if name in self._frames and not overwrite:
            raise ValueError(f"Artifact '{name}' is already registered for run {self.run_id}.")
        self._frames[name] = frame

    def get(self, name: str) -> pd.DataFrame:
        if name not in self._frames:
            raise KeyError(f"No artifact named '{name}' in run {self.run_id}.")
        return self._frames[name]

    def manifest(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "metadata": self.metadata,
            "artifacts": {
                name: {
                    "file": f"{name}.parquet",
                    "rows": int(len(frame)),
                    "columns": [str(c) for c in frame.columns],
                    "schema_hash": schema_hash(frame),
                }
                for name, frame in self._frames.items()
            },
        }

    def save(self) -> Path:
        """Write every registered frame plus the manifest; returns the run directory."""
        if not self._frames:
            raise ValueError("Nothing registered; refusing to write an empty run.")
        run_dir = self.run_dir
        run_dir.mkdir(parents=True, exist_ok=True)

        manifest = self.manifest()
        for name, frame in self._frames.items():
            path = run_dir / manifest["artifacts"][name]["file"]
            frame.to_parquet(path, index=False)
            logger.info("Saved %s (%d rows) to %s", name, len(frame), path)

        with open(run_dir / MANIFEST_NAME, "w", encoding="utf-8") as fh:
            json.dump(manifest, fh, indent=2, default=str)
        return run_dir

    @classmethod
    def load(cls, run_dir: Path | str) -> "ArtifactRegistry":
        """
        Read a saved run through its manifest.

        Raises SchemaViolation if a stored table no longer matches the
        row count or column list recorded in the manifest.
        """
        run_dir = Path(run_dir)
        manifest_path = run_dir / MANIFEST_NAME
        if not manifest_path.exists():
            raise FileNotFoundError(f"No {MANIFEST_NAME} in {run_dir}")
        with open(manifest_path, encoding="utf-8") as fh:
            manifest = json.load(fh)

        registry = cls(root=run_dir.parent, run_id=manifest["run_id"], metadata=manifest.get("metadata"))
        for name, entry in manifest["artifacts"].items():
            frame = pd.read_parquet(run_dir / entry["file"])
            if len(frame) != entry["rows"]:
                raise SchemaViolation(
                    f"Artifact '{name}' has {len(frame)} rows; manifest says {entry['rows']}."
                )
            if [str(c) for c in frame.columns] != entry["columns"]:
                raise SchemaViolation(f"Artifact '{name}' columns differ from the manifest.")
            registry.register(name, frame)
        logger.info("Loaded run %s (%d artifacts)", registry.run_id, len(registry.names))
        return registry
