"""Application configuration settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables prefixed with CROSSMODEL_.
    For example, CROSSMODEL_JOIN_MIN_CONFIDENCE=75.
    """

    model_config = SettingsConfigDict(
        env_prefix="CROSSMODEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".crossmodel",
        description="Directory for crossmodel data and configuration",
    )

    # Database
    database_url: str | None = Field(
        default=None,
        description="Database URL (default: sqlite:///{data_dir}/crossmodel.db)",
    )

    # Output
    default_format: Literal["json", "table"] = Field(
        default="json",
        description="Default output format for CLI commands",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Join discovery
    join_min_confidence: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Heuristic join suggestions scoring below this are discarded",
    )
    join_max_suggestions: int = Field(
        default=10,
        ge=1,
        description="Maximum number of join suggestions returned for a table pair",
    )

    # Introspection
    document_sample_size: int = Field(
        default=100,
        ge=1,
        description="Documents sampled per collection when inferring document schemas",
    )

    # Tenant row limits
    default_row_limit: int = Field(
        default=-1,
        ge=-1,
        description="Row limit applied to tenants without an explicit limit (-1 = unlimited)",
    )
    row_limits_file: Path | None = Field(
        default=None,
        description="YAML file mapping tenant ids to row limits",
    )

    @property
    def resolved_database_url(self) -> str:
        """Get the database URL, with default if not explicitly set."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir}/crossmodel.db"

    def ensure_data_dir(self) -> None:
        """Create the data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the CLI and API entry points."""
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
