"""Tests for the omo-quota command line."""

import json
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from click.testing import CliRunner

from omoquota.cli.main import build_suggestions, main
from omoquota.core.config import get_settings
from omoquota.core.errors import SaveError
from omoquota.domain.providers import classify
from omoquota.services.tracker_store import TrackerStore

ECONOMICAL = b'{\n  "agents": {}\n}\n'


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def strategies(env_settings):
    env_settings.strategies_dir.mkdir(parents=True)
    for name in ("strategy-1-performance", "strategy-2-balanced", "strategy-3-economical"):
        (env_settings.strategies_dir / f"{name}.jsonc").write_bytes(ECONOMICAL)
    env_settings.active_config_path.write_text("{}\n", encoding="utf-8")
    return env_settings.strategies_dir


def read_tracker(settings):
    return json.loads(settings.tracker_path.read_text(encoding="utf-8"))


class TestInit:
    """Tests for `omo-quota init`."""

    def test_creates_tracker(self, runner, env_settings):
        """Test init writes the seeded tracker."""
        result = runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert "anthropic" in read_tracker(env_settings)["providers"]

    def test_keeps_existing_tracker(self, runner, env_settings):
        """Test a second init without --force keeps the file."""
        runner.invoke(main, ["init"])
        TrackerStore(settings=env_settings).set_strategy("performance")

        result = runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert "already exists" in result.output
        assert read_tracker(env_settings)["currentStrategy"] == "performance"

    def test_unwritable_tracker_exits_3(self, runner, tmp_path, monkeypatch):
        """Test a tracker that cannot be saved exits with code 3."""
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        monkeypatch.setenv("OMO_QUOTA_TRACKER_PATH", str(blocker / "tracker.json"))
        get_settings.cache_clear()
        try:
            result = runner.invoke(main, ["init"])
        finally:
            get_settings.cache_clear()

        assert result.exit_code == 3


class TestStatus:
    """Tests for `omo-quota status`."""

    def test_without_tracker(self, runner, env_settings):
        """Test status explains how to start when nothing is tracked."""
        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "omo-quota init" in result.output
        assert not env_settings.tracker_path.exists()

    def test_shows_current_strategy(self, runner, env_settings):
        """Test status reports the recorded strategy."""
        runner.invoke(main, ["init"])

        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Current strategy: balanced" in result.output

    def test_corrupt_tracker_is_reported(self, runner, env_settings):
        """Test a corrupt tracker is reported and not overwritten."""
        env_settings.tracker_path.write_text("{oops", encoding="utf-8")

        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "unreadable" in result.output
        assert env_settings.tracker_path.read_text(encoding="utf-8") == "{oops"


class TestSwitch:
    """Tests for `omo-quota switch`."""

    def test_switches(self, runner, env_settings, strategies):
        """Test a successful switch installs the file and records it."""
        runner.invoke(main, ["init"])

        result = runner.invoke(main, ["switch", "economical"])

        assert result.exit_code == 0
        assert env_settings.active_config_path.read_bytes() == ECONOMICAL
        assert env_settings.backup_config_path.read_text(encoding="utf-8") == "{}\n"
        assert read_tracker(env_settings)["currentStrategy"] == "economical"

    def test_unknown_strategy_exits_4(self, runner, env_settings, strategies):
        """Test an unknown strategy exits 4 and leaves the config alone."""
        result = runner.invoke(main, ["switch", "turbo"])

        assert result.exit_code == 4
        assert "turbo" in result.output
        assert env_settings.active_config_path.read_text(encoding="utf-8") == "{}\n"

    def test_missing_strategy_file_exits_5(self, runner, env_settings, strategies):
        """Test a missing strategy file exits 5."""
        (strategies / "strategy-1-performance.jsonc").unlink()

        result = runner.invoke(main, ["switch", "performance"])

        assert result.exit_code == 5
        assert env_settings.active_config_path.read_text(encoding="utf-8") == "{}\n"


class TestUpdateAndReset:
    """Tests for `omo-quota update` and `omo-quota reset`."""

    def test_update_monthly(self, runner, env_settings):
        """Test update records monthly request usage."""
        runner.invoke(main, ["init"])

        result = runner.invoke(main, ["update", "github-copilot-premium", "150"])

        assert result.exit_code == 0
        assert read_tracker(env_settings)["providers"]["github-copilot-premium"]["used"] == 150

    def test_update_unknown_provider(self, runner, env_settings):
        """Test updating an untracked provider fails."""
        runner.invoke(main, ["init"])

        result = runner.invoke(main, ["update", "nope", "1"])

        assert result.exit_code == 1
        assert "nope" in result.output

    def test_update_requires_number(self, runner, env_settings):
        """Test a non-numeric usage is a usage error."""
        result = runner.invoke(main, ["update", "anthropic", "lots"])
        assert result.exit_code == 2

    def test_reset_all(self, runner, env_settings):
        """Test reset all re-baselines the hourly providers."""
        runner.invoke(main, ["init"])

        result = runner.invoke(main, ["reset", "all"])

        assert result.exit_code == 0
        assert "Reset 4 hourly providers" in result.output


class TestSyncAndDoctor:
    """Tests for `omo-quota sync` and `omo-quota doctor`."""

    def test_sync_without_storage(self, runner, env_settings):
        """Test sync with no message storage changes nothing."""
        result = runner.invoke(main, ["sync"])

        assert result.exit_code == 0
        assert "No messages found" in result.output
        assert not env_settings.tracker_path.exists()

    def test_doctor_reports_problems(self, runner, env_settings):
        """Test doctor exits non-zero when files are missing."""
        result = runner.invoke(main, ["doctor"])

        assert result.exit_code == 1
        assert "problem(s) found" in result.output

    def test_doctor_passes(self, runner, env_settings, strategies):
        """Test doctor passes on a complete installation."""
        runner.invoke(main, ["init"])

        result = runner.invoke(main, ["doctor"])

        assert result.exit_code == 0
        assert "All checks passed" in result.output

    def test_list(self, runner, env_settings, strategies):
        """Test list renders the catalog."""
        result = runner.invoke(main, ["list"])
        assert result.exit_code == 0
        assert "Strategies" in result.output


class TestWatch:
    """Tests for `omo-quota watch` option handling."""

    @pytest.mark.parametrize(
        "args",
        [["--threshold", "0"], ["--threshold", "150"], ["--threshold", "-5"], ["--interval", "0"]],
    )
    def test_rejects_out_of_range_options(self, runner, env_settings, args):
        """Test threshold must be in (0, 100] and interval positive."""
        result = runner.invoke(main, ["watch", *args])
        assert result.exit_code == 2

    def test_explicit_options_are_used(self, runner, env_settings, monkeypatch):
        """Test explicit interval and threshold reach the monitor."""
        monitor_cls = Mock()
        scheduler = Mock()
        scheduler.failed = SaveError("disk full", path=str(env_settings.tracker_path))
        scheduler_cls = Mock(return_value=scheduler)
        monkeypatch.setattr("omoquota.cli.main.QuotaMonitor", monitor_cls)
        monkeypatch.setattr("omoquota.cli.main.MonitorScheduler", scheduler_cls)
        monkeypatch.setattr("omoquota.cli.main.signal.signal", Mock())

        result = runner.invoke(main, ["watch", "--interval", "7", "--threshold", "5", "--no-sync"])

        assert result.exit_code == 3
        assert monitor_cls.call_args.kwargs["threshold"] == 5.0
        assert scheduler_cls.call_args.args[1] == 7
        scheduler.stop.assert_called_once()

    def test_defaults_come_from_settings(self, runner, env_settings, monkeypatch):
        """Test omitted options fall back to the configured defaults."""
        monitor_cls = Mock()
        scheduler = Mock()
        scheduler.failed = SaveError("disk full", path=str(env_settings.tracker_path))
        scheduler_cls = Mock(return_value=scheduler)
        monkeypatch.setattr("omoquota.cli.main.QuotaMonitor", monitor_cls)
        monkeypatch.setattr("omoquota.cli.main.MonitorScheduler", scheduler_cls)
        monkeypatch.setattr("omoquota.cli.main.signal.signal", Mock())

        runner.invoke(main, ["watch", "--no-sync"])

        assert monitor_cls.call_args.kwargs["threshold"] == env_settings.watch_threshold
        assert scheduler_cls.call_args.args[1] == env_settings.watch_interval_seconds


class TestBuildSuggestions:
    """Tests for reset hints."""

    def test_suggests_soon_and_expired(self):
        """Test hints for providers resetting soon or already expired."""
        now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        statuses = {
            "anthropic": classify({"resetInterval": "5h", "nextReset": "2026-03-10T12:10:00.000Z"}),
            "zhipuai": classify({"resetInterval": "5h", "nextReset": "2026-03-10T11:00:00.000Z"}),
            "google-1": classify({"resetInterval": "5h", "nextReset": "2026-03-10T15:00:00.000Z"}),
            "deepseek": classify({"balance": "¥1", "currency": "CNY"}),
        }

        suggestions = build_suggestions(statuses, now)

        assert len(suggestions) == 2
        assert "Claude Pro resets in 10m, use it first" in suggestions
        assert "ZhiPuAI Max has reset; run 'omo-quota reset zhipuai'" in suggestions
