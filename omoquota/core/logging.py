"""
Logging for omo-quota.

Records go to stderr; stdout belongs to the rich tables and messages the
CLI prints. config/logging.yaml is applied when it ships next to the
package, otherwise a single stderr handler is installed.

The level comes from --verbose, else LOG_LEVEL, else WARNING, so normal
commands print nothing but their own output.
"""

import logging
import logging.config
import os
import sys
from pathlib import Path
from typing import Optional

import yaml

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _default_config_path() -> Optional[Path]:
    for parent in Path(__file__).resolve().parents:
        if (parent / "pyproject.toml").exists():
            return parent / "config" / "logging.yaml"
    return None


def setup_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure the `omoquota` logger tree.

    Args:
        config_path: dictConfig YAML. Defaults to config/logging.yaml.
        log_level: Overrides LOG_LEVEL.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "WARNING")).upper()
    path = Path(config_path) if config_path else _default_config_path()

    if path is not None and path.exists():
        with open(path, "r", encoding="utf-8") as f:
            logging.config.dictConfig(yaml.safe_load(f))
    else:
        logging.basicConfig(
            level=logging.WARNING,
            format=LOG_FORMAT,
            datefmt=DATE_FORMAT,
            handlers=[logging.StreamHandler(sys.stderr)],
        )

    logging.getLogger("omoquota").setLevel(getattr(logging, level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Logger under the `omoquota.` namespace."""
    if not name.startswith("omoquota"):
        name = f"omoquota.{name}"
    return logging.getLogger(name)


class LoggerMixin:
    """Gives service classes a `logger` named after the class."""

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__)
        return self._logger
