"""Read points out of Graphite whisper files."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

import whisper
from loguru import logger

from wspmigrate.series.models import Point, TimeWindow
from wspmigrate.series.resolver import WHISPER_EXTENSION


class SourceReadError(RuntimeError):
    """Raised when a whisper file cannot be opened or decoded."""


@dataclass(slots=True)
class WhisperHandle:
    """Open whisper file plus the header fields the migration needs."""

    path: Path
    fh: BinaryIO
    max_retention: int
    archives: list[dict[str, int]] = field(default_factory=list)

    @property
    def first_archive_size(self) -> int:
        return int(self.archives[0]["size"]) if self.archives else 0


@dataclass(frozen=True, slots=True)
class WhisperInfo:
    path: Path
    oldest: int
    point_count: int
    max_retention: int
    archive_count: int
    size_bytes: int


def find_whisper_files(root: Path) -> list[Path]:
    """Every ``.wsp`` file below ``root`` in a stable order."""

    if not root.exists():
        logger.warning("Whisper directory {} does not exist", root)
        return []
    return sorted(path for path in root.rglob(f"*{WHISPER_EXTENSION}") if path.is_file())


def open_whisper(path: Path) -> WhisperHandle:
    try:
        info = whisper.info(str(path))
    except (OSError, whisper.WhisperException) as exc:
        raise SourceReadError(f"Cannot open whisper file {path}: {exc}") from exc
    if info is None:
        raise SourceReadError(f"Cannot read whisper header of {path}")
    try:
        fh = path.open("rb")
    except OSError as exc:
        raise SourceReadError(f"Cannot open whisper file {path}: {exc}") from exc
    return WhisperHandle(
        path=path,
        fh=fh,
        max_retention=int(info["maxRetention"]),
        archives=list(info.get("archives", [])),
    )


def fetch_range(handle: WhisperHandle, window: TimeWindow, *, now: int | None = None) -> list[Point]:
    """Points with a timestamp in ``[window.start, window.end)``, nulls dropped.

    Whisper picks the highest precision archive that still covers the start of
    the window; ranges outside the retention return no points.
    """

    if window.is_empty:
        return []
    # whisper only returns slots strictly after the from time
    try:
        result = whisper.file_fetch(handle.fh, window.start_epoch - 1, window.end_epoch, now=now)
    except (OSError, whisper.WhisperException) as exc:
        raise SourceReadError(f"Cannot fetch {window} from {handle.path}: {exc}") from exc
    if result is None:
        return []

    (start, _end, step), values = result
    points: list[Point] = []
    for position, value in enumerate(values):
        if value is None:
            continue
        timestamp = start + position * step
        if window.contains(timestamp):
            points.append((timestamp, float(value)))
    return points


def close_whisper(handle: WhisperHandle) -> None:
    handle.fh.close()


def read_points(path: Path, window: TimeWindow) -> list[Point]:
    """Open, fetch and close in one call."""

    handle = open_whisper(path)
    try:
        return fetch_range(handle, window)
    finally:
        close_whisper(handle)


def describe(path: Path, *, now: int | None = None) -> WhisperInfo:
    """Oldest reachable timestamp and number of stored points of ``path``."""

    now = int(now if now is not None else time.time())
    handle = open_whisper(path)
    try:
        oldest = now - handle.max_retention
        points = fetch_range(handle, TimeWindow.from_epoch(oldest, now + 1), now=now)
        return WhisperInfo(
            path=path,
            oldest=oldest,
            point_count=len(points),
            max_retention=handle.max_retention,
            archive_count=len(handle.archives),
            size_bytes=path.stat().st_size,
        )
    finally:
        close_whisper(handle)


__all__ = [
    "SourceReadError",
    "WhisperHandle",
    "WhisperInfo",
    "close_whisper",
    "describe",
    "fetch_range",
    "find_whisper_files",
    "open_whisper",
    "read_points",
]
