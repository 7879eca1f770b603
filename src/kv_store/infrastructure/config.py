"""Configuration management for the key-value store."""

from __future__ import annotations

import secrets
import string
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Storage configuration."""

    model_config = ConfigDict(frozen=True)

    data_dir: Path = Field(default=Path("."), description="Directory holding database files")
    file_extension: str = Field(
        default=".db", pattern=r"^\.[A-Za-z0-9_-]+$", description="Database file extension"
    )
    file_mode: int = Field(default=0o600, ge=0, le=0o777, description="Permissions for new files")
    sync_mode: Literal["fsync", "none"] = Field(
        default="fsync", description="Whether commits fsync before returning"
    )
    lock_timeout_seconds: float | None = Field(
        default=None, gt=0, description="Max wait for the writer lock (None = wait forever)"
    )


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")
    username: str | None = Field(default=None, description="HTTP Basic username")
    password: str | None = Field(default=None, description="HTTP Basic password")
    metrics_enabled: bool = Field(default=False, description="Expose Prometheus metrics")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")

    def with_generated_credentials(self, length: int = 4) -> ServerConfig:
        """Return a copy where unset credentials are replaced by random letters."""
        alphabet = string.ascii_letters

        def generate() -> str:
            return "".join(secrets.choice(alphabet) for _ in range(length))

        return self.model_copy(
            update={
                "username": self.username or generate(),
                "password": self.password or generate(),
            }
        )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    model_config = ConfigDict(frozen=True)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="kv_store", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for the key-value store."""

    model_config = SettingsConfigDict(
        env_prefix="KV_STORE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def ensure_directories(self) -> None:
        """Ensure the data directory exists."""
        self.storage.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    config = Config()
    config.ensure_directories()
    return config
