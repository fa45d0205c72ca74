"""Logging setup shared by the API process, workers and scripts."""
from __future__ import annotations

import logging
import logging.config
from pathlib import Path

import yaml

LOGGING_CONFIG = Path(__file__).resolve().parents[2] / "configs" / "logging.yaml"


def configure_logging(level: str | None = None, config_path: Path = LOGGING_CONFIG) -> None:
    """Apply ``configs/logging.yaml``; ``level`` overrides the ``baryabazaar`` logger."""

    if config_path.is_file():
        config = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        logging.config.dictConfig(config)
    else:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    if level:
        logging.getLogger("baryabazaar").setLevel(level.upper())


__all__ = ["LOGGING_CONFIG", "configure_logging"]
