"""Discover the destination shard groups covering a migration window."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from loguru import logger

from wspmigrate.influx.client import InfluxClient, InfluxClientError
from wspmigrate.influx.lineprotocol import format_point
from wspmigrate.series.models import Shard, TimeWindow

DEFAULT_MARKER_MEASUREMENT = "wspmigrate_shard_marker"
_MARKER_STEP = timedelta(days=1)


class ShardCatalogError(RuntimeError):
    """Raised when shard groups cannot be created or listed."""


class ShardCatalog(Protocol):
    def resolve_shards(self, database: str, window: TimeWindow) -> list[Shard]:
        """Return the shards covering ``window`` ordered by start time."""
        ...


class InfluxShardCatalog:
    """Forces the engine to create shard groups for a window and reads them back.

    InfluxDB only creates a shard group when a point falls into it, so one
    marker point per day is written into a throwaway measurement, the groups
    are listed with ``SHOW SHARD GROUPS`` and the marker data is dropped
    again. The shard groups themselves survive the drop.
    """

    def __init__(
        self,
        client: InfluxClient,
        *,
        marker_measurement: str = DEFAULT_MARKER_MEASUREMENT,
        retention_policy: str | None = None,
    ):
        self.client = client
        self.marker_measurement = marker_measurement
        self.retention_policy = retention_policy

    def resolve_shards(self, database: str, window: TimeWindow) -> list[Shard]:
        if window.is_empty:
            return []
        try:
            self.client.create_database(database)
            try:
                self._write_markers(database, window)
                rows = self.client.query("SHOW SHARD GROUPS")
            finally:
                self._drop_markers(database)
        except InfluxClientError as exc:
            raise ShardCatalogError(f"Cannot resolve shards of {database}: {exc}") from exc

        shards = sorted(
            (self._row_to_shard(row) for row in rows if self._belongs_to(row, database)),
            key=lambda shard: shard.window.start,
        )
        logger.info("Resolved {} shard groups for {} in {}", len(shards), database, window)
        return shards

    def _write_markers(self, database: str, window: TimeWindow) -> None:
        lines: list[str] = []
        instant = window.start
        while instant < window.end:
            lines.append(format_point(self.marker_measurement, (), "value", int(instant.timestamp()), 1.0))
            instant += _MARKER_STEP
        logger.debug("Writing {} shard marker points into {}", len(lines), database)
        self.client.write(lines, database, precision="s", retention_policy=self.retention_policy)

    def _drop_markers(self, database: str) -> None:
        try:
            self.client.query(f'DROP MEASUREMENT "{self.marker_measurement}"', database)
        except InfluxClientError as exc:
            logger.error("Cannot drop shard marker measurement {} from {}: {}", self.marker_measurement, database, exc)

    def _belongs_to(self, row: dict[str, Any], database: str) -> bool:
        if row.get("database") != database:
            return False
        if self.retention_policy is None:
            return True
        return row.get("retention_policy", self.retention_policy) == self.retention_policy

    @staticmethod
    def _row_to_shard(row: dict[str, Any]) -> Shard:
        try:
            start = _parse_timestamp(row["start_time"])
            end = _parse_timestamp(row["end_time"])
            return Shard(id=str(row["id"]), window=TimeWindow(start=start, end=end))
        except (KeyError, TypeError, ValueError) as exc:
            raise ShardCatalogError(f"Unexpected shard group row {row}: {exc}") from exc


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = [
    "DEFAULT_MARKER_MEASUREMENT",
    "InfluxShardCatalog",
    "ShardCatalog",
    "ShardCatalogError",
]
