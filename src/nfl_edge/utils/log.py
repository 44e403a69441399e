from __future__ import annotations

import logging
from pathlib import Path

from nfl_edge.config import LOG_CONFIG


def configure_logging(
    level: str | int | None = None,
    log_file: str | Path | None = None,
) -> logging.Logger:
    """
    Configure the ``nfl_edge`` logger for scripts.

    Library modules only ever call ``logging.getLogger(__name__)``; handlers
    are attached here so importing the package has no side effects.

    Parameters
    ----------
    level:
        Logging level name or number. Defaults to LOG_CONFIG.level.
    log_file:
        Optional file name. Relative names are placed under LOG_CONFIG.logs_dir.
    """
    root = logging.getLogger("nfl_edge")
    root.setLevel(level if level is not None else LOG_CONFIG.level)

    formatter = logging.Formatter(LOG_CONFIG.fmt)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in root.handlers):
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        root.addHandler(stream)

    if log_file is not None:
        path = Path(log_file)
        if not path.is_absolute():
            path = LOG_CONFIG.logs_dir / path
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root
