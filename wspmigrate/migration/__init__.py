"""Migration pass: context, mapping, destination strategies and orchestration."""

from wspmigrate.migration.context import (
    MigrationAborted,
    MigrationContext,
    MigrationCounters,
    MigrationFailure,
    format_size,
)
from wspmigrate.migration.mapper import SeriesMapper
from wspmigrate.migration.writers import REMOTE_BATCH_SIZE, RemoteWriteStrategy, TsmFileStrategy
from wspmigrate.migration.prompt import InteractivePatternSource
from wspmigrate.migration.pipeline import MigrationPipeline

__all__ = [
    "InteractivePatternSource",
    "MigrationAborted",
    "MigrationContext",
    "MigrationCounters",
    "MigrationFailure",
    "MigrationPipeline",
    "REMOTE_BATCH_SIZE",
    "RemoteWriteStrategy",
    "SeriesMapper",
    "TsmFileStrategy",
    "format_size",
]
