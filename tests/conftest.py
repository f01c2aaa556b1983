"""Shared fixtures."""

import pytest

from omoquota.core.config import Settings, get_settings


@pytest.fixture
def settings(tmp_path):
    """Settings with every path pointed inside tmp_path."""
    return Settings(
        omo_quota_tracker_path=str(tmp_path / "tracker.json"),
        opencode_config_dir=str(tmp_path / "opencode"),
        omo_quota_message_storage=str(tmp_path / "storage" / "message"),
    )


@pytest.fixture
def env_settings(tmp_path, monkeypatch):
    """Same paths as `settings`, but supplied through the environment."""
    monkeypatch.setenv("OMO_QUOTA_TRACKER_PATH", str(tmp_path / "tracker.json"))
    monkeypatch.setenv("OPENCODE_CONFIG_DIR", str(tmp_path / "opencode"))
    monkeypatch.setenv("OMO_QUOTA_MESSAGE_STORAGE", str(tmp_path / "storage" / "message"))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()
