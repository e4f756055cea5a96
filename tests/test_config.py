"""Tests for configuration management."""

import os
import stat

import pytest

from watch_merge.config import Config, ConfigError


def test_config_default_paths(tmp_path):
    """Config uses data directory for storage."""
    config = Config(data_dir=tmp_path)
    assert config.config_path == tmp_path / "config.yaml"


def test_config_defaults(tmp_path):
    config = Config(data_dir=tmp_path)
    assert config.min_progress_seconds == 60
    assert config.max_backup_mb == 50
    assert config.max_backup_bytes == 50 * 1024 * 1024
    assert config.remote_configured is False


def test_config_save_and_load(tmp_path):
    """Config saves and loads settings."""
    config = Config(data_dir=tmp_path)
    config.set_remote_credentials(
        base_url="https://records.example.com/api/",
        user_id="user123",
        access_token="token456",
    )
    config.set_min_progress_seconds(30)
    config.set_max_backup_mb(10)
    config.save()

    # Load in new instance
    config2 = Config(data_dir=tmp_path)
    config2.load()
    assert config2.base_url == "https://records.example.com/api"
    assert config2.user_id == "user123"
    assert config2.access_token == "token456"
    assert config2.min_progress_seconds == 30
    assert config2.max_backup_mb == 10
    assert config2.remote_configured is True


def test_config_file_permissions(tmp_path):
    """Config file has restricted permissions (0600)."""
    config = Config(data_dir=tmp_path)
    config.set_remote_credentials(
        base_url="https://records.example.com",
        user_id="user123",
        access_token="token456",
    )
    config.save()

    # Check permissions (Unix only)
    if os.name != "nt":
        mode = stat.S_IMODE(os.stat(config.config_path).st_mode)
        assert mode == 0o600


def test_config_load_missing_file(tmp_path):
    """Config raises error when file missing."""
    config = Config(data_dir=tmp_path)
    with pytest.raises(ConfigError, match="not found"):
        config.load()


def test_config_load_if_exists_keeps_defaults(tmp_path):
    config = Config(data_dir=tmp_path)
    config.load_if_exists()
    assert config.min_progress_seconds == 60


def test_config_invalid_progress_threshold(tmp_path):
    config = Config(data_dir=tmp_path)
    with pytest.raises(ConfigError, match="min_progress_seconds"):
        config.set_min_progress_seconds(-5)


def test_config_invalid_values_in_file(tmp_path):
    (tmp_path / "config.yaml").write_text("merge:\n  max_backup_mb: lots\n")
    config = Config(data_dir=tmp_path)
    with pytest.raises(ConfigError, match="max_backup_mb"):
        config.load()


def test_config_creates_data_dir(tmp_path):
    data_dir = tmp_path / "nested" / "data"
    Config(data_dir=data_dir)
    assert data_dir.is_dir()
