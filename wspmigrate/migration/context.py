"""Mutable per-run state shared by the mapper, the writers and the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from loguru import logger

from wspmigrate.config.patterns import TagPattern
from wspmigrate.series.models import SeriesIdentity

_SIZE_UNITS: tuple[tuple[int, str], ...] = (
    (1 << 30, "GB"),
    (1 << 20, "MB"),
    (1 << 10, "KB"),
)


class MigrationAborted(RuntimeError):
    """Raised in strict mode when the first source or destination error occurs."""


def format_size(size: int) -> str:
    """Render a byte count as ``B``, ``KB``, ``MB`` or ``GB``."""

    for factor, unit in _SIZE_UNITS:
        if size >= factor:
            return f"{size / factor:.2f} {unit}"
    return f"{size} B"


@dataclass(slots=True)
class MigrationCounters:
    """Running totals of one migration pass."""

    legacy_files: int = 0
    legacy_bytes: int = 0
    destination_files: int = 0
    destination_bytes: int = 0
    points_read: int = 0
    points_written: int = 0
    skipped_files: int = 0
    skipped_points: int = 0
    empty_shards: int = 0

    def size_reduction(self) -> float | None:
        """Percentage saved by the destination files relative to the legacy ones."""

        if self.legacy_bytes == 0 or self.destination_files == 0:
            return None
        return (self.legacy_bytes - self.destination_bytes) / self.legacy_bytes * 100.0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class MigrationFailure:
    stage: str
    target: str
    message: str


@dataclass(slots=True)
class MigrationContext:
    """State owned by the control thread for the duration of a run.

    ``patterns`` grows when unmatched files are resolved interactively and is
    persisted after the preview phase.
    """

    patterns: list[TagPattern] = field(default_factory=list)
    identities: dict[str, SeriesIdentity] = field(default_factory=dict)
    counters: MigrationCounters = field(default_factory=MigrationCounters)
    failures: list[MigrationFailure] = field(default_factory=list)
    strict: bool = False

    def record_failure(self, stage: str, target: str, error: BaseException) -> None:
        """Remember a failed unit of work; in strict mode abort the run instead."""

        message = str(error) or error.__class__.__name__
        logger.error("{} failed for {}: {}", stage, target, message)
        self.failures.append(MigrationFailure(stage=stage, target=target, message=message))
        if self.strict:
            raise MigrationAborted(f"{stage} failed for {target}: {message}") from error

    @property
    def succeeded(self) -> bool:
        return not self.failures


__all__ = [
    "MigrationAborted",
    "MigrationContext",
    "MigrationCounters",
    "MigrationFailure",
    "format_size",
]
