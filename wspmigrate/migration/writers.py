"""Destination strategies: direct TSM files or the HTTP write API."""

from __future__ import annotations

import math
from concurrent import futures
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Callable, Protocol

from loguru import logger

from wspmigrate.influx.client import InfluxClient, InfluxClientError
from wspmigrate.influx.lineprotocol import format_point
from wspmigrate.influx.tsm import TSMWriteError, TSMWriter
from wspmigrate.series.models import PointBatch, Shard, TimeWindow
from wspmigrate.shards.catalog import ShardCatalog
from wspmigrate.shards.window import clip

from .context import MigrationContext
from .mapper import SeriesMapper

TSM_FILE_NAME = "000000001-000000002.tsm"
REMOTE_BATCH_SIZE = 5000
REMOTE_MAX_INFLIGHT = 4

Row = tuple[str, tuple[tuple[str, str], ...], str, int, float]
WriterFactory = Callable[[Path], TSMWriter]


class WriteStrategy(Protocol):
    def run(self, window: TimeWindow) -> None:
        """Migrate everything inside ``window`` to the destination."""
        ...


class TsmFileStrategy:
    """Writes one TSM file per shard straight into the engine's data directory."""

    def __init__(
        self,
        mapper: SeriesMapper,
        catalog: ShardCatalog,
        context: MigrationContext,
        executor: Executor,
        *,
        data_dir: Path,
        database: str,
        retention_policy: str,
        force: bool = False,
        writer_factory: WriterFactory = TSMWriter.create,
    ):
        self.mapper = mapper
        self.catalog = catalog
        self.context = context
        self.executor = executor
        self.data_dir = data_dir
        self.database = database
        self.retention_policy = retention_policy
        self.force = force
        self.writer_factory = writer_factory

    def path_for(self, shard: Shard) -> Path:
        return self.data_dir / self.database / self.retention_policy / shard.id / TSM_FILE_NAME

    def run(self, window: TimeWindow) -> None:
        shards = self.catalog.resolve_shards(self.database, window)
        if not shards:
            logger.warning("No shard groups found for {} in {}", self.database, window)
        for shard in shards:
            clipped = clip(shard.window, window)
            if clipped is None:
                logger.debug("Shard {} lies outside {}", shard.id, window)
                self.context.counters.empty_shards += 1
                continue
            self.write_shard(shard, clipped)

    def write_shard(self, shard: Shard, window: TimeWindow) -> None:
        path = self.path_for(shard)
        if path.exists() and not self.force:
            logger.warning("TSM file {} exists; skipping shard {} (use --force to overwrite)", path, shard.id)
            return

        logger.info("Mapping shard {} for {}", shard.id, window)
        batches = [batch for batch in self.executor.submit(self.mapper.map_shard, window).result() if len(batch)]
        if not batches:
            logger.info("Shard {} has no points in {}; nothing written", shard.id, window)
            self.context.counters.empty_shards += 1
            return

        try:
            self._write_file(path, batches)
        except (TSMWriteError, OSError) as exc:
            path.unlink(missing_ok=True)
            self.context.record_failure("tsm", str(path), exc)
            return

        size = path.stat().st_size
        points = sum(len(batch) for batch in batches)
        counters = self.context.counters
        counters.destination_files += 1
        counters.destination_bytes += size
        counters.points_written += points
        logger.info("Wrote {} points in {} series to {} ({} bytes)", points, len(batches), path, size)

    def _write_file(self, path: Path, batches: list[PointBatch]) -> None:
        writer = self.writer_factory(path)
        try:
            for batch in batches:
                writer.write(batch.key, batch.points)
            writer.write_index()
        finally:
            writer.close()


class RemoteWriteStrategy:
    """Streams points through ``/write`` in fixed-size batches.

    Full batches are flushed on the executor while mapping continues; the
    pending batch is replaced, never mutated after dispatch, so flush tasks
    only ever see their own snapshot. At most ``max_inflight`` flushes run at
    once; dispatching another one waits for the first of them to finish.
    """

    def __init__(
        self,
        mapper: SeriesMapper,
        client: InfluxClient,
        context: MigrationContext,
        executor: Executor,
        *,
        database: str,
        retention_policy: str | None = None,
        batch_size: int = REMOTE_BATCH_SIZE,
        max_inflight: int = REMOTE_MAX_INFLIGHT,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        if max_inflight < 1:
            raise ValueError("max_inflight must be positive")
        self.mapper = mapper
        self.client = client
        self.context = context
        self.executor = executor
        self.database = database
        self.retention_policy = retention_policy
        self.batch_size = batch_size
        self.max_inflight = max_inflight
        self._pending: list[Row] = []
        self._inflight: list[tuple[Future[int], int]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def run(self, window: TimeWindow) -> None:
        self.client.create_database(self.database)
        for file_path in self.mapper.files:
            batch = self.mapper.map_file(file_path, window)
            if batch is None:
                continue
            logger.info("Migrating {} points from {} for {}", len(batch), file_path, window)
            self.add(batch)
        self.finish()

    def add(self, batch: PointBatch) -> None:
        identity = batch.identity
        for timestamp, value in batch.points:
            if not math.isfinite(value):
                self.context.counters.skipped_points += 1
                logger.warning("Skipping non-finite value {} at {} in {}", value, timestamp, batch.source or batch.key)
                continue
            self._pending.append((identity.measurement, identity.tags, identity.field, timestamp, value))
            if len(self._pending) >= self.batch_size:
                self._dispatch()

    def finish(self) -> None:
        """Flush the partial batch synchronously, then join every dispatched flush."""

        if self._pending:
            rows = tuple(self._pending)
            self._pending = []
            try:
                self.context.counters.points_written += self._flush(rows)
            except (InfluxClientError, ValueError) as exc:
                self.context.record_failure("remote", f"final batch of {len(rows)} points", exc)
        self._reap(wait=True)

    def _dispatch(self) -> None:
        rows = tuple(self._pending)
        self._pending = []
        if len(self._inflight) >= self.max_inflight:
            futures.wait([future for future, _ in self._inflight], return_when=futures.FIRST_COMPLETED)
            self._reap(wait=False)
        self._inflight.append((self.executor.submit(self._flush, rows), len(rows)))
        logger.debug("Dispatched batch of {} points ({} in flight)", len(rows), len(self._inflight))
        self._reap(wait=False)

    def _reap(self, *, wait: bool) -> None:
        inflight, self._inflight = self._inflight, []
        for future, size in inflight:
            if not wait and not future.done():
                self._inflight.append((future, size))
                continue
            try:
                self.context.counters.points_written += future.result()
            except (InfluxClientError, ValueError) as exc:
                self.context.record_failure("remote", f"batch of {size} points", exc)

    def _flush(self, rows: tuple[Row, ...]) -> int:
        lines = [format_point(*row) for row in rows]
        self.client.write(lines, self.database, precision="s", retention_policy=self.retention_policy)
        return len(lines)


__all__ = [
    "REMOTE_BATCH_SIZE",
    "REMOTE_MAX_INFLIGHT",
    "RemoteWriteStrategy",
    "TSM_FILE_NAME",
    "TsmFileStrategy",
    "WriteStrategy",
]
