"""
Core module - Engineering foundation

Contains configuration, logging, errors, time utilities and quota arithmetic.
"""

from omoquota.core.config import Settings, get_settings, load_app_config, load_yaml_config
from omoquota.core.errors import (
    OmoQuotaError,
    SaveError,
    StrategySwitchError,
)
from omoquota.core.logging import setup_logging, get_logger

__all__ = [
    "Settings",
    "get_settings",
    "load_app_config",
    "load_yaml_config",
    "OmoQuotaError",
    "SaveError",
    "StrategySwitchError",
    "setup_logging",
    "get_logger",
]
