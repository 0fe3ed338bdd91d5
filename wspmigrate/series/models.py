"""Value objects shared by the resolver, the shard logic and the writers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

Point = tuple[int, float]
"""``(epoch_seconds, value)`` as produced by the legacy reader."""


@dataclass(frozen=True, slots=True, eq=False)
class SeriesIdentity:
    """Destination measurement, tag set and field of one legacy file.

    Tags keep their configured order for key encoding; equality and hashing
    treat them as a set.
    """

    measurement: str
    tags: tuple[tuple[str, str], ...] = ()
    field: str = "value"

    def __post_init__(self) -> None:
        keys = [key for key, _ in self.tags]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Duplicate tag keys in identity: {keys}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SeriesIdentity):
            return NotImplemented
        return (
            self.measurement == other.measurement
            and self.field == other.field
            and frozenset(self.tags) == frozenset(other.tags)
        )

    def __hash__(self) -> int:
        return hash((self.measurement, frozenset(self.tags), self.field))

    @property
    def tag_map(self) -> dict[str, str]:
        return dict(self.tags)


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Half-open ``[start, end)`` interval of UTC instants."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    @property
    def start_epoch(self) -> int:
        return int(self.start.timestamp())

    @property
    def end_epoch(self) -> int:
        return int(self.end.timestamp())

    def contains(self, epoch_seconds: int) -> bool:
        return self.start_epoch <= epoch_seconds < self.end_epoch

    @classmethod
    def from_epoch(cls, start: int, end: int) -> "TimeWindow":
        return cls(
            start=datetime.fromtimestamp(start, tz=timezone.utc),
            end=datetime.fromtimestamp(end, tz=timezone.utc),
        )

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


@dataclass(frozen=True, slots=True)
class Shard:
    """Engine-assigned storage unit; only its boundaries are used."""

    id: str
    window: TimeWindow


@dataclass(frozen=True, slots=True)
class PointBatch:
    """Points of one legacy file destined for one series key."""

    key: str
    identity: SeriesIdentity
    points: tuple[Point, ...] = ()
    source: str = ""

    @classmethod
    def build(
        cls,
        key: str,
        identity: SeriesIdentity,
        points: Sequence[Point],
        *,
        source: str = "",
    ) -> "PointBatch":
        return cls(key=key, identity=identity, points=tuple(points), source=source)

    def __len__(self) -> int:
        return len(self.points)


__all__ = ["Point", "PointBatch", "SeriesIdentity", "Shard", "TimeWindow"]
