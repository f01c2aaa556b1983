"""Tests for settings, logging, time helpers and errors."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from omoquota.core.config import DEFAULT_APP_CONFIG, Settings, load_app_config
from omoquota.core.errors import InstallError, SaveError, UnknownStrategyError
from omoquota.core.logging import LoggerMixin, get_logger, setup_logging
from omoquota.core.timeutil import parse_interval, parse_iso, to_iso


class TestSettings:
    """Tests for Settings."""

    def test_derived_paths(self, tmp_path):
        """Test configuration paths derive from the config directory."""
        settings = Settings(opencode_config_dir=str(tmp_path))

        assert settings.active_config_path == tmp_path / "oh-my-opencode.jsonc"
        assert settings.backup_config_path == tmp_path / "oh-my-opencode.backup.jsonc"
        assert settings.strategies_dir == tmp_path / "strategies"

    def test_tracker_path_override(self, tmp_path):
        """Test the tracker path override wins over the home default."""
        settings = Settings(omo_quota_tracker_path=str(tmp_path / "t.json"))
        assert settings.tracker_path == tmp_path / "t.json"

    def test_env_override(self, env_settings, tmp_path):
        """Test paths are read from the environment."""
        assert env_settings.tracker_path == tmp_path / "tracker.json"
        assert env_settings.config_dir == tmp_path / "opencode"

    def test_invalid_threshold(self):
        """Test the watch threshold must be a percentage."""
        with pytest.raises(ValidationError):
            Settings(watch_threshold=0)

    def test_invalid_log_level(self):
        """Test unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")


class TestAppConfig:
    """Tests for business rule config."""

    def test_strategies_present(self):
        """Test the strategy catalog is configured."""
        config = load_app_config()
        assert set(config["strategies"]) == set(DEFAULT_APP_CONFIG["strategies"])
        assert config["monitor"]["economical_strategy"] == "economical"


class TestTimeutil:
    """Tests for tracker timestamp helpers."""

    def test_iso_format(self):
        """Test timestamps are written with milliseconds and Z."""
        dt = datetime(2026, 1, 31, 14, 30, tzinfo=timezone.utc)
        assert to_iso(dt) == "2026-01-31T14:30:00.000Z"

    def test_parse_accepts_offsets_and_naive(self):
        """Test offsets are normalized to UTC and naive values taken as UTC."""
        expected = datetime(2026, 1, 31, 14, 30, tzinfo=timezone.utc)
        assert parse_iso("2026-01-31T22:30:00+08:00") == expected
        assert parse_iso("2026-01-31T14:30:00") == expected
        assert parse_iso("2026-01-31T14:30:00.000Z") == expected

    def test_parse_rejects_garbage(self):
        """Test non-timestamps raise ValueError."""
        with pytest.raises(ValueError):
            parse_iso("next tuesday")
        with pytest.raises(ValueError):
            parse_iso(12345)

    @pytest.mark.parametrize(
        "text,expected",
        [("5h", timedelta(hours=5)), ("30m", timedelta(minutes=30)),
         ("1d", timedelta(days=1)), ("1.5H", timedelta(hours=1.5))],
    )
    def test_parse_interval(self, text, expected):
        """Test supported interval units."""
        assert parse_interval(text) == expected

    @pytest.mark.parametrize("text", ["", "5", "5w", "0h", "-1h"])
    def test_parse_interval_rejects(self, text):
        """Test unsupported or non-positive intervals."""
        with pytest.raises(ValueError):
            parse_interval(text)


class TestErrors:
    """Tests for error metadata."""

    def test_exit_codes(self):
        """Test each failure kind has its own exit code."""
        assert SaveError("x", path="p").exit_code == 3
        assert UnknownStrategyError("x", available=[]).exit_code == 4
        assert InstallError("x", config_intact=False, restored=False).exit_code == 7

    def test_to_dict(self):
        """Test errors serialize with code and details."""
        err = InstallError("economical", config_intact=True, restored=True, cause=OSError("full"))

        data = err.to_dict()

        assert data["error"] == "INSTALL_ERROR"
        assert data["details"]["stage"] == "installing"
        assert data["details"]["restored"] is True
        assert data["details"]["cause"] == "full"


class TestLogging:
    """Tests for logging setup."""

    @pytest.fixture(autouse=True)
    def restore_level(self):
        logger = logging.getLogger("omoquota")
        level = logger.level
        yield
        logger.setLevel(level)

    def test_explicit_level_wins(self, tmp_path):
        """Test an explicit level is applied to the package logger."""
        setup_logging(config_path=str(tmp_path / "missing.yaml"), log_level="debug")
        assert logging.getLogger("omoquota").level == logging.DEBUG

    def test_env_level(self, tmp_path, monkeypatch):
        """Test LOG_LEVEL is used when no level is given."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(config_path=str(tmp_path / "missing.yaml"))
        assert logging.getLogger("omoquota").level == logging.ERROR

    def test_yaml_config_applied(self, tmp_path):
        """Test a dictConfig file is loaded when present."""
        config = tmp_path / "logging.yaml"
        config.write_text(
            "version: 1\n"
            "disable_existing_loggers: false\n"
            "loggers:\n"
            "  omoquota.test_yaml:\n"
            "    level: CRITICAL\n",
            encoding="utf-8",
        )

        setup_logging(config_path=str(config), log_level="INFO")

        assert logging.getLogger("omoquota.test_yaml").level == logging.CRITICAL

    def test_names_are_prefixed(self):
        """Test loggers live under the omoquota namespace."""

        class Worker(LoggerMixin):
            pass

        assert get_logger("tracker").name == "omoquota.tracker"
        assert get_logger("omoquota.cli").name == "omoquota.cli"
        assert Worker().logger.name == "omoquota.Worker"
