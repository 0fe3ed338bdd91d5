"""Turn legacy files into point batches for one time window."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

from loguru import logger

from wspmigrate.legacy.reader import SourceReadError, read_points
from wspmigrate.series.models import Point, PointBatch, TimeWindow
from wspmigrate.series.resolver import IdentityResolver

from .context import MigrationContext

PointReader = Callable[[Path, TimeWindow], Sequence[Point]]


class SeriesMapper:
    """Reads every legacy file for a window and attaches its series key.

    The mapper mutates the run context (counters, failures, and through the
    resolver the pattern list); it is only ever driven by one thread at a time.
    """

    def __init__(
        self,
        files: Sequence[Path],
        resolver: IdentityResolver,
        context: MigrationContext,
        *,
        reader: PointReader = read_points,
    ):
        self.files = list(files)
        self.resolver = resolver
        self.context = context
        self.reader = reader
        self._unreadable: set[Path] = set()

    def map_file(self, file_path: Path, window: TimeWindow) -> PointBatch | None:
        """Batch of ``file_path``'s points inside ``window``, or ``None`` if there are none."""

        if window.is_empty or file_path in self._unreadable:
            return None
        try:
            points = self.reader(file_path, window)
        except SourceReadError as exc:
            self._unreadable.add(file_path)
            self.context.counters.skipped_files += 1
            self.context.record_failure("read", str(file_path), exc)
            return None
        if not points:
            logger.debug("No points in {} for {}", file_path, window)
            return None

        identity = self.resolver.identify(file_path)
        key = self.resolver.key_for(file_path)
        self.context.counters.points_read += len(points)
        return PointBatch.build(key, identity, points, source=str(file_path))

    def map_shard(self, window: TimeWindow) -> list[PointBatch]:
        """Map every legacy file for one clipped shard window, in file order."""

        batches: list[PointBatch] = []
        for file_path in self.files:
            batch = self.map_file(file_path, window)
            if batch is not None:
                batches.append(batch)
        logger.info("Mapped {} of {} files for {}", len(batches), len(self.files), window)
        return batches


__all__ = ["PointReader", "SeriesMapper"]
