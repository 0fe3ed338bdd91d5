"""Application-level configuration models."""

from __future__ import annotations

from pydantic import Field

from wspmigrate.config.base import BaseConfig
from wspmigrate.config.migration import InfluxConnectionConfig, MigrationSettings


class AppConfig(BaseConfig):
    """Top-level runtime configuration for the migration tool."""

    logging_level: str = Field("INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")
    migration: MigrationSettings = Field(
        default_factory=MigrationSettings,
        description="Migration run settings",
    )
    influx: InfluxConnectionConfig = Field(
        default_factory=InfluxConnectionConfig,
        description="Destination InfluxDB connection",
    )


__all__ = ["AppConfig"]
