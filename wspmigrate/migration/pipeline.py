"""End-to-end orchestration of a whisper to InfluxDB migration."""

from __future__ import annotations

import json
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import polars as pl
from loguru import logger

from wspmigrate.config.migration import InfluxConnectionConfig, MigrationSettings
from wspmigrate.config.patterns import load_patterns, save_patterns
from wspmigrate.influx.client import InfluxClient, InfluxClientError
from wspmigrate.legacy.reader import find_whisper_files
from wspmigrate.series.models import TimeWindow
from wspmigrate.series.resolver import IdentityResolver, PatternSource
from wspmigrate.shards.catalog import InfluxShardCatalog, ShardCatalog, ShardCatalogError

from .context import MigrationContext, format_size
from .mapper import PointReader, SeriesMapper
from .writers import RemoteWriteStrategy, TsmFileStrategy, WriteStrategy

PREVIEW_COLUMNS: tuple[str, ...] = ("file", "measurement", "tags", "field", "key")


class MigrationPipeline:
    """Discovers legacy files, previews their series keys and migrates them.

    The pipeline owns the run context; collaborators that talk to the outside
    world (pattern source, HTTP client, shard catalog, point reader) can be
    injected for tests.
    """

    def __init__(
        self,
        settings: MigrationSettings,
        influx: InfluxConnectionConfig | None = None,
        *,
        pattern_source: PatternSource | None = None,
        client: InfluxClient | None = None,
        catalog: ShardCatalog | None = None,
        reader: PointReader | None = None,
    ):
        self.settings = settings
        self.influx = influx or InfluxConnectionConfig()
        self.pattern_source = pattern_source
        self._client = client
        self._catalog = catalog
        self._reader = reader
        self.files: list[Path] = []
        self.context = MigrationContext(strict=settings.strict)
        if settings.tag_config is not None:
            self.context.patterns = load_patterns(settings.tag_config)
        self.resolver = IdentityResolver(
            self.context.patterns,
            pattern_source,
            cache=self.context.identities,
            sort_tags=settings.canonical_tag_order,
        )
        self.window: TimeWindow | None = None
        self.duration: float | None = None

    @property
    def client(self) -> InfluxClient:
        if self._client is None:
            self._client = InfluxClient.from_config(self.influx)
        return self._client

    def discover(self) -> list[Path]:
        """Enumerate the legacy files and tally their size."""

        if self.settings.wsp_path is None:
            raise ValueError("'wsp_path' is required")
        self.files = find_whisper_files(self.settings.wsp_path)
        counters = self.context.counters
        counters.legacy_files = len(self.files)
        counters.legacy_bytes = sum(path.stat().st_size for path in self.files)
        logger.info(
            "Found {} whisper files ({}) under {}",
            counters.legacy_files,
            format_size(counters.legacy_bytes),
            self.settings.wsp_path,
        )
        return self.files

    def preview(self, output: Path | None = None) -> pl.DataFrame:
        """Resolve every file's series key, persist the pattern list and tabulate the result."""

        rows: list[dict[str, str]] = []
        for file_path in self.files:
            identity = self.resolver.identify(file_path)
            key = self.resolver.key_for(file_path)
            logger.info("Whisper file {} -> {}", file_path, key)
            rows.append(
                {
                    "file": str(file_path),
                    "measurement": identity.measurement,
                    "tags": ",".join(f"{k}={v}" for k, v in identity.tags),
                    "field": identity.field,
                    "key": key,
                }
            )

        if self.settings.tag_config is not None:
            save_patterns(self.settings.tag_config, self.context.patterns)

        frame = pl.DataFrame(rows, schema={column: pl.Utf8 for column in PREVIEW_COLUMNS})
        if output is not None:
            output.parent.mkdir(parents=True, exist_ok=True)
            frame.write_csv(output)
            logger.info("Preview of {} series written to {}", frame.height, output)
        return frame

    def run(self, *, now: datetime | None = None) -> MigrationContext:
        """Migrate the requested window with the configured strategy."""

        self.window = self.settings.requested_window(now=now)
        logger.info("Migrating {} files for {} in '{}' mode", len(self.files), self.window, self.settings.mode)
        started = time.monotonic()
        try:
            with ThreadPoolExecutor(
                max_workers=self.settings.flush_workers,
                thread_name_prefix="wspmigrate",
            ) as executor:
                strategy = self._build_strategy(executor)
                try:
                    strategy.run(self.window)
                except (ShardCatalogError, InfluxClientError) as exc:
                    self.context.record_failure(self.settings.mode, self.settings.database, exc)
        finally:
            self.duration = time.monotonic() - started
        return self.context

    def _build_strategy(self, executor: ThreadPoolExecutor) -> WriteStrategy:
        mapper_kwargs: dict[str, Any] = {}
        if self._reader is not None:
            mapper_kwargs["reader"] = self._reader
        mapper = SeriesMapper(self.files, self.resolver, self.context, **mapper_kwargs)

        if self.settings.mode == "remote":
            return RemoteWriteStrategy(
                mapper,
                self.client,
                self.context,
                executor,
                database=self.settings.database,
                retention_policy=self.settings.retention_policy,
                max_inflight=self.settings.flush_workers,
            )

        if self.settings.influx_data_dir is None:
            raise ValueError("'influx_data_dir' is required for mode 'tsm'")
        catalog = self._catalog or InfluxShardCatalog(
            self.client,
            retention_policy=self.settings.retention_policy,
        )
        return TsmFileStrategy(
            mapper,
            catalog,
            self.context,
            executor,
            data_dir=self.settings.influx_data_dir,
            database=self.settings.database,
            retention_policy=self.settings.retention_policy,
            force=self.settings.force,
        )

    def summary_lines(self) -> list[str]:
        counters = self.context.counters
        lines = [
            "Migration summary",
            f"  whisper files:       {counters.legacy_files}",
            f"  whisper size:        {format_size(counters.legacy_bytes)}",
            f"  points read:         {counters.points_read}",
            f"  points written:      {counters.points_written}",
        ]
        if self.settings.mode == "tsm":
            lines.append(f"  TSM files:           {counters.destination_files}")
            lines.append(f"  TSM size:            {format_size(counters.destination_bytes)}")
            reduction = counters.size_reduction()
            if reduction is not None:
                lines.append(f"  size reduction:      {reduction:.2f}%")
            lines.append(f"  empty shards:        {counters.empty_shards}")
        lines.append(f"  skipped files:       {counters.skipped_files}")
        if counters.skipped_points:
            lines.append(f"  skipped points:      {counters.skipped_points}")
        if self.duration is not None:
            lines.append(f"  time taken:          {self.duration:.1f}s")
        lines.append(f"  failures:            {len(self.context.failures)}")
        lines.extend(f"    [{f.stage}] {f.target}: {f.message}" for f in self.context.failures)
        return lines

    def build_report(self) -> dict[str, Any]:
        counters = self.context.counters
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "mode": self.settings.mode,
            "database": self.settings.database,
            "retention_policy": self.settings.retention_policy,
            "window": {
                "start": self.window.start.isoformat() if self.window else None,
                "end": self.window.end.isoformat() if self.window else None,
            },
            "counters": counters.as_dict(),
            "size_reduction_percent": counters.size_reduction(),
            "duration_seconds": self.duration,
            "patterns": len(self.context.patterns),
            "failures": [
                {"stage": f.stage, "target": f.target, "message": f.message} for f in self.context.failures
            ],
        }

    def write_report(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.build_report(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info("Migration report written to {}", path)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


__all__ = ["MigrationPipeline", "PREVIEW_COLUMNS"]
