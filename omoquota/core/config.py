"""
Configuration management for omo-quota.

Supports:
- Environment variables / .env file for paths and runtime knobs
- YAML config for business rules (strategy catalog, thresholds, balances)
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from omoquota.core.logging import get_logger

logger = get_logger("config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==============================================
    # Runtime
    # ==============================================
    log_level: str = Field(default="WARNING", description="Level for the omoquota loggers")
    timezone: str = Field(default="Asia/Shanghai", description="Display timezone")

    # ==============================================
    # Paths
    # ==============================================
    omo_quota_tracker_path: Optional[str] = Field(
        default=None,
        description="Tracker file override (tests point this at a temp file)",
    )
    opencode_config_dir: str = Field(default="~/.config/opencode")
    omo_quota_message_storage: str = Field(
        default="~/.local/share/opencode/storage/message",
        description="OpenCode message storage scanned by `sync`",
    )

    # ==============================================
    # Watch mode
    # ==============================================
    watch_interval_seconds: int = Field(default=300, description="Seconds between checks")
    watch_threshold: float = Field(default=20.0, description="Alert when remaining < N%")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("watch_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0 < v <= 100:
            raise ValueError(f"watch_threshold must be in (0, 100], got {v}")
        return v

    @property
    def tracker_path(self) -> Path:
        if self.omo_quota_tracker_path:
            return Path(self.omo_quota_tracker_path).expanduser()
        return Path.home() / ".omo-quota-tracker.json"

    @property
    def config_dir(self) -> Path:
        return Path(self.opencode_config_dir).expanduser()

    @property
    def active_config_path(self) -> Path:
        return self.config_dir / "oh-my-opencode.jsonc"

    @property
    def backup_config_path(self) -> Path:
        return self.config_dir / "oh-my-opencode.backup.jsonc"

    @property
    def strategies_dir(self) -> Path:
        return self.config_dir / "strategies"

    @property
    def message_storage_path(self) -> Path:
        return Path(self.omo_quota_message_storage).expanduser()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Built-in business rules, used when config/config.yaml is not shipped
# alongside the package.
DEFAULT_APP_CONFIG: dict[str, Any] = {
    "strategies": {
        "performance": {
            "file": "strategy-1-performance.jsonc",
            "display_name": "极致性能型",
            "use_case": "关键项目、紧急任务",
        },
        "balanced": {
            "file": "strategy-2-balanced.jsonc",
            "display_name": "均衡实用型",
            "use_case": "日常开发、通用任务",
        },
        "economical": {
            "file": "strategy-3-economical.jsonc",
            "display_name": "极致省钱型",
            "use_case": "实验项目、预算受限",
        },
    },
    "default_strategy": "balanced",
    "quota": {
        "warning_threshold": 20,
        "critical_threshold": 10,
        "default_reset_interval": "5h",
        "initial_balance": {"CNY": 500, "default": 100},
    },
    "monitor": {
        "economical_strategy": "economical",
    },
}


def load_yaml_config(config_path: Optional[str] = None) -> dict[str, Any]:
    """
    Load YAML configuration file.

    Args:
        config_path: Path to config file. Defaults to config/config.yaml

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        # Find project root (where pyproject.toml is)
        current = Path(__file__).resolve()
        for parent in current.parents:
            if (parent / "pyproject.toml").exists():
                config_path = str(parent / "config" / "config.yaml")
                break
        else:
            config_path = "config/config.yaml"

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@lru_cache()
def load_app_config() -> dict[str, Any]:
    """
    Get business rules, merged over the built-in defaults.

    Top-level sections from config.yaml replace the defaults key by key.
    """
    try:
        loaded = load_yaml_config()
    except FileNotFoundError as e:
        logger.debug(f"{e}; using built-in defaults")
        return DEFAULT_APP_CONFIG

    merged = dict(DEFAULT_APP_CONFIG)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged
