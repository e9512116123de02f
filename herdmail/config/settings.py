"""Configuration models for the capture server."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ServerConfig(BaseModel):
    """SMTP listener settings."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 2525
    hostname: str = "herd.local"
    idle_timeout: float = 60.0
    max_message_size: int = 26_214_400  # 25 MB
    max_line_length: int = 8192
    poll_interval: float = 0.5

    @field_validator("port")
    def validate_port(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ValueError("port must be between 0 and 65535")
        return v

    @field_validator("idle_timeout", "poll_interval")
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("max_message_size", "max_line_length")
    def validate_positive_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("size limits must be positive")
        return v


class StorageConfig(BaseModel):
    """Storage configuration."""

    model_config = ConfigDict(frozen=True)

    data_dir: str = "~/.herdmail"
    max_messages: Optional[int] = None

    @field_validator("max_messages")
    def validate_max_messages(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("max_messages must be positive")
        return v

    def get_data_dir(self) -> Path:
        """Get expanded data directory."""
        return Path(self.data_dir).expanduser()

    def get_database_path(self) -> Path:
        return self.get_data_dir() / "messages.db"

    def get_messages_dir(self) -> Path:
        return self.get_data_dir() / "messages"

    def get_audit_log_path(self) -> Path:
        return self.get_data_dir() / "logs" / "audit.log"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @field_validator("level")
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}")
        return level


class MailerSettings(BaseModel):
    """
    SMTP client settings a development site uses to reach the server.

    Defaults match the Herd Mailer WordPress plugin: SMTP auth on,
    username "WordPress" and an empty password.
    """

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 2525
    smtp_auth: bool = True
    username: str = "WordPress"
    password: str = ""


class AppConfig(BaseModel):
    """Main application configuration."""

    model_config = ConfigDict(frozen=True)

    schema_version: str = "1.0"
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    mailer: MailerSettings = Field(default_factory=MailerSettings)

    @field_validator("schema_version")
    def validate_schema_version(cls, v: str) -> str:
        if not v:
            raise ValueError("schema_version is required")
        return v
