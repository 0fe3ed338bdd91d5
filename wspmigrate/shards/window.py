"""Clip shard boundaries to the requested migration window."""

from __future__ import annotations

from wspmigrate.series.models import TimeWindow


def clip(shard_window: TimeWindow, requested: TimeWindow) -> TimeWindow | None:
    """Return the part of ``shard_window`` inside ``requested``.

    Both windows are half-open, so a shard ending exactly where the request
    starts contributes nothing. ``None`` means the shard is skipped entirely.
    """

    start = max(shard_window.start, requested.start)
    end = min(shard_window.end, requested.end)
    if start >= end:
        return None
    if start == shard_window.start and end == shard_window.end:
        return shard_window
    return TimeWindow(start=start, end=end)


__all__ = ["clip"]
