"""Configuration loader for application settings."""

import json
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import ValidationError

from .settings import AppConfig


class ConfigError(Exception):
    """Raised when a configuration file or override is invalid."""

    pass


# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "HERDMAIL_HOST": ("server", "host"),
    "HERDMAIL_PORT": ("server", "port"),
    "HERDMAIL_IDLE_TIMEOUT": ("server", "idle_timeout"),
    "HERDMAIL_DATA_DIR": ("storage", "data_dir"),
    "HERDMAIL_LOG_LEVEL": ("logging", "level"),
}


class ConfigLoader:
    """Load and validate application configuration."""

    DEFAULT_CONFIG_PATHS = [
        Path("~/.herdmail/config.json"),
        Path("config/herdmail.json"),
    ]

    def __init__(
        self,
        config_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize configuration loader.

        Args:
            config_path: Optional custom config file path
            environ: Environment to read overrides from (default: os.environ)
        """
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self._config: Optional[AppConfig] = None

    def load_app_config(self) -> AppConfig:
        """
        Load application configuration from file and environment.

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If an explicit config path does not exist
            ConfigError: If config is invalid
        """
        if self._config is not None:
            return self._config

        if self.config_path and not self.config_path.expanduser().exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        config_paths = [self.config_path] if self.config_path else self.DEFAULT_CONFIG_PATHS

        config_data: dict = {}
        for config_path in config_paths:
            if config_path.expanduser().exists():
                config_data = self._read_file(config_path)
                break

        self._apply_env_overrides(config_data)

        try:
            self._config = AppConfig(**config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        return self._config

    def reload(self) -> AppConfig:
        """Reload configuration from file."""
        self._config = None
        return self.load_app_config()

    def _read_file(self, config_path: Path) -> dict:
        try:
            with open(config_path.expanduser(), "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid config in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config in {config_path}: top level must be an object")
        return data

    def _apply_env_overrides(self, config_data: dict) -> None:
        for env_name, (section, field) in ENV_OVERRIDES.items():
            value = self.environ.get(env_name)
            if value is None or value == "":
                continue
            section_data = config_data.setdefault(section, {})
            if not isinstance(section_data, dict):
                raise ConfigError(f"Config section '{section}' must be an object")
            section_data[field] = value
