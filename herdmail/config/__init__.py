"""Configuration management"""

from .config_loader import ConfigError, ConfigLoader
from .settings import AppConfig, LoggingConfig, MailerSettings, ServerConfig, StorageConfig

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "AppConfig",
    "LoggingConfig",
    "MailerSettings",
    "ServerConfig",
    "StorageConfig",
]
