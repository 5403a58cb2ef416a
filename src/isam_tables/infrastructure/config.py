"""Configuration management for the table access layer."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Storage configuration."""

    data_dir: Path = Field(default=Path("./data"), description="Data directory path")
    database_file: str = Field(
        default="tables.edb", min_length=1, description="Database file name inside data_dir"
    )
    engine: Literal["memory", "journal"] = Field(
        default="journal", description="Storage engine adapter"
    )
    sync_mode: Literal["fsync", "none"] = Field(
        default="fsync", description="Journal sync mode"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="isam_tables", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for the table access layer."""

    model_config = SettingsConfigDict(
        env_prefix="ISAM_TABLES_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @property
    def database_path(self) -> Path:
        """Full path of the database file."""
        return self.storage.data_dir / self.storage.database_file

    def ensure_directories(self) -> None:
        """Ensure the data directory exists."""
        self.storage.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    config = Config()
    config.ensure_directories()
    return config
