"""Configuration management for watch-merge."""

import os
import stat
from pathlib import Path
from typing import Optional

import yaml

from watch_merge.merge import MIN_PROGRESS_SECONDS

DEFAULT_MAX_BACKUP_MB = 50


class ConfigError(Exception):
    """Configuration error."""

    pass


class Config:
    """Manages watch-merge configuration."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize config with data directory."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_path = self.data_dir / "config.yaml"

        # Records API
        self.base_url: Optional[str] = None
        self.user_id: Optional[str] = None
        self.access_token: Optional[str] = None

        # Merge settings
        self.min_progress_seconds: int = MIN_PROGRESS_SECONDS
        self.max_backup_mb: int = DEFAULT_MAX_BACKUP_MB

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    @property
    def remote_configured(self) -> bool:
        """Whether records API credentials are set."""
        return bool(self.base_url and self.user_id and self.access_token)

    @property
    def max_backup_bytes(self) -> int:
        return self.max_backup_mb * 1024 * 1024

    def set_remote_credentials(
        self,
        base_url: str,
        user_id: str,
        access_token: str,
    ) -> None:
        """Set records API credentials."""
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.access_token = access_token

    def set_min_progress_seconds(self, seconds: int) -> None:
        """Set the smallest position change worth saving."""
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 0:
            raise ConfigError(f"Invalid min_progress_seconds: {seconds}")
        self.min_progress_seconds = seconds

    def set_max_backup_mb(self, megabytes: int) -> None:
        """Set the backup file size limit."""
        if isinstance(megabytes, bool) or not isinstance(megabytes, int) or megabytes <= 0:
            raise ConfigError(f"Invalid max_backup_mb: {megabytes}")
        self.max_backup_mb = megabytes

    def save(self) -> None:
        """Save configuration to YAML file."""
        data = {
            "remote": {
                "base_url": self.base_url,
                "user_id": self.user_id,
                "access_token": self.access_token,
            },
            "merge": {
                "min_progress_seconds": self.min_progress_seconds,
                "max_backup_mb": self.max_backup_mb,
            },
        }

        with open(self.config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

        # Set file permissions to 0600 (owner read/write only)
        if os.name != "nt":
            os.chmod(self.config_path, stat.S_IRUSR | stat.S_IWUSR)

    def load(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(
                f"Config file not found: {self.config_path}\n"
                "Run 'watch-merge remote-setup' to configure."
            )

        with open(self.config_path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file: {self.config_path}")

        remote = data.get("remote") or {}
        self.base_url = remote.get("base_url")
        self.user_id = remote.get("user_id")
        self.access_token = remote.get("access_token")

        merge = data.get("merge") or {}
        self.set_min_progress_seconds(
            merge.get("min_progress_seconds", MIN_PROGRESS_SECONDS)
        )
        self.set_max_backup_mb(merge.get("max_backup_mb", DEFAULT_MAX_BACKUP_MB))

    def load_if_exists(self) -> None:
        """Load the config file when present, otherwise keep defaults."""
        if self.exists():
            self.load()
