"""Configuration namespace for wspmigrate."""

from __future__ import annotations

from .base import BaseConfig, load_config
from .patterns import (
    PatternConfigError,
    TagPattern,
    TagTemplate,
    load_patterns,
    save_patterns,
)
from .app import AppConfig
from .migration import InfluxConnectionConfig, MigrationSettings, parse_date
from .utils import ENV_PREFIX, env_reference_name, resolve_env_reference

__all__ = [
    "BaseConfig",
    "AppConfig",
    "load_config",
    "InfluxConnectionConfig",
    "MigrationSettings",
    "parse_date",
    "PatternConfigError",
    "TagPattern",
    "TagTemplate",
    "load_patterns",
    "save_patterns",
    "ENV_PREFIX",
    "env_reference_name",
    "resolve_env_reference",
]
