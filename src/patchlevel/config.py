"""Configuration management for patchlevel."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=False, description="Also write logs to a rotating file")
    log_file_path: str = Field(default="logs/patchlevel.log", description="Rotating log file")
    log_file_max_bytes: int = Field(default=5 * 1024 * 1024, description="Rotate after this size")
    log_file_backup_count: int = Field(default=3, description="Rotated files to keep")

    # Storage
    install_root: Path = Field(
        default=Path("."), description="Base directory for ./ and ../ step paths"
    )
    preferences_path: Path = Field(
        default=Path("data/preferences.json"), description="Preference store file"
    )

    # Updater endpoint
    updater_subject: str = Field(default="patchlevel", description="Subject the endpoint updates")
    updater_default_path: str = Field(
        default="../updates", description="Step directory seeded on install"
    )
    updater_host: str = Field(default="0.0.0.0", description="Endpoint bind address")  # nosec B104
    updater_port: int = Field(default=8090, description="Endpoint port")

    # Updater client
    updater_url: str = Field(default="http://localhost:8090", description="Endpoint base URL")
    updater_secret: SecretStr | None = Field(
        default=None, description="Shared secret sent with trigger requests"
    )

    @field_validator("updater_port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("updater_port must be between 1 and 65535")
        return value

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
