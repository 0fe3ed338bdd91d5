"""Configuration models for a whisper to InfluxDB migration run."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator

from wspmigrate.series.models import TimeWindow

from .base import BaseConfig

DATE_FORMAT = "%Y-%m-%d"


def parse_date(value: str) -> datetime:
    """Parse a ``YYYY-MM-DD`` string into a UTC midnight instant."""

    try:
        parsed = datetime.strptime(value.strip(), DATE_FORMAT)
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc
    return parsed.replace(tzinfo=timezone.utc)


class InfluxConnectionConfig(BaseConfig):
    """Connection settings for the destination InfluxDB 1.x server."""

    host: str = Field("http://localhost", description="Scheme and host name of the InfluxDB server")
    port: int = Field(8086, description="HTTP API port", ge=1, le=65535)
    username: str | None = Field(None, description="Username for InfluxDB authentication")
    password: str | None = Field(
        None,
        description="Password or 'env:VAR_NAME' reference for InfluxDB authentication",
    )
    timeout: float = Field(30.0, description="HTTP request timeout (seconds)", gt=0)
    max_retries: int = Field(3, description="Attempts per HTTP request", ge=1)
    retry_delay: float = Field(1.0, description="Delay between retries (seconds)", ge=0)

    @property
    def base_url(self) -> str:
        return f"{self.host.rstrip('/')}:{self.port}"


class MigrationSettings(BaseConfig):
    """Options controlling which data is migrated and where it goes."""

    mode: Literal["tsm", "remote"] = Field(
        "tsm",
        description="Write TSM files directly ('tsm') or stream through the HTTP API ('remote')",
    )
    wsp_path: Path | None = Field(None, description="Root directory of the whisper files")
    influx_data_dir: Path | None = Field(
        None,
        description="InfluxDB data directory (required for mode 'tsm')",
    )
    from_date: str | None = Field(None, description="Start of the migrated range (YYYY-MM-DD)")
    until_date: str | None = Field(
        None,
        description="End of the migrated range (YYYY-MM-DD, exclusive; defaults to now)",
    )
    database: str = Field("migrated", description="Destination database name")
    retention_policy: str = Field("autogen", description="Destination retention policy")
    tag_config: Path | None = Field(None, description="JSON file holding the tag patterns")
    flush_workers: int = Field(4, description="Concurrent remote write flushes", ge=1)
    canonical_tag_order: bool = Field(
        False,
        description="Sort tags by key when building series keys instead of keeping pattern order",
    )
    strict: bool = Field(
        False,
        description="Abort the run on the first source or destination error",
    )
    force: bool = Field(False, description="Overwrite existing TSM files")
    report_path: Path | None = Field(None, description="Optional JSON file for the final report")

    @field_validator("from_date", "until_date")
    @classmethod
    def _check_date(cls, value: str | None) -> str | None:
        if value is not None:
            parse_date(value)
        return value

    def requested_window(self, *, now: datetime | None = None) -> TimeWindow:
        """Return the ``[from, until)`` window this run migrates."""

        if self.from_date is None:
            raise ValueError("'from_date' is required")
        start = parse_date(self.from_date)
        if self.until_date is not None:
            end = parse_date(self.until_date)
        else:
            end = now or datetime.now(timezone.utc)
        if end < start:
            raise ValueError(f"'until_date' ({end:%Y-%m-%d}) is before 'from_date' ({start:%Y-%m-%d})")
        return TimeWindow(start=start, end=end)

    def validate_for_run(self) -> None:
        """Check the cross-field requirements that only apply to a real run."""

        missing: list[str] = []
        if self.wsp_path is None:
            missing.append("wsp_path")
        if self.tag_config is None:
            missing.append("tag_config")
        if self.from_date is None:
            missing.append("from_date")
        if self.mode == "tsm" and self.influx_data_dir is None:
            missing.append("influx_data_dir")
        if missing:
            raise ValueError(f"Missing required settings for mode '{self.mode}': {', '.join(missing)}")
        self.requested_window()


__all__ = ["InfluxConnectionConfig", "MigrationSettings", "parse_date", "DATE_FORMAT"]
