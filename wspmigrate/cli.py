"""Command line interface for wspmigrate."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from pydantic import ValidationError

from .config import AppConfig, InfluxConnectionConfig, MigrationSettings, PatternConfigError, load_config
from .config.inspector import check_config
from .influx import InfluxClient
from .legacy import SourceReadError, describe, find_whisper_files
from .migration import InteractivePatternSource, MigrationAborted, MigrationPipeline
from .series import PatternSource, UnmatchedSeriesError

DEFAULT_CONFIG_PATH = Path("wspmigrate.toml")

_log_sink_id: int | None = None


@dataclass(slots=True)
class CLIState:
    """Holds shared state between Typer commands."""

    config_path: Path
    _config: AppConfig | None = None

    def ensure_config(self) -> AppConfig:
        if self._config is None:
            if self.config_path.exists():
                logger.info("Loading configuration from {}", self.config_path)
                self._config = load_config(AppConfig, self.config_path)
            else:
                logger.debug("No configuration at {}; using defaults", self.config_path)
                self._config = AppConfig()
        return self._config


app = typer.Typer(help="Migrate Graphite whisper files into InfluxDB")
config_app = typer.Typer(help="Validate configuration files")
app.add_typer(config_app, name="config")


def _normalize_format(value: str) -> str:
    return value.lower()


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):  # pragma: no cover
        raise RuntimeError("CLI context is not initialised")
    return state


def _exit(code: int) -> None:
    raise typer.Exit(code)


def _configure_logging(level: str) -> None:
    """Replace the stderr sink so it honours ``level``."""

    global _log_sink_id
    if _log_sink_id is None:
        try:
            logger.remove(0)
        except ValueError:
            pass
    else:
        logger.remove(_log_sink_id)
    _log_sink_id = logger.add(sys.stderr, level=level.upper())


def _load_or_exit(state: CLIState) -> AppConfig:
    try:
        return state.ensure_config()
    except FileNotFoundError as exc:
        logger.error("{}", exc)
    except ValidationError as exc:
        logger.error("Configuration validation failed for {}: {}", state.config_path, exc)
    except ValueError as exc:
        logger.error("Invalid configuration {}: {}", state.config_path, exc)
    _exit(2)
    raise AssertionError("unreachable")


def _override(model: Any, **overrides: Any) -> Any:
    """Re-validate ``model`` with the non-``None`` CLI overrides applied."""

    data = model.model_dump()
    data.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return type(model).model_validate(data)
    except ValidationError as exc:
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or "<root>"
            logger.error("Invalid option {}: {}", location, error["msg"])
        _exit(2)
        raise


def _pattern_source(no_prompt: bool) -> PatternSource | None:
    return None if no_prompt else InteractivePatternSource()


def _build_pipeline(
    settings: MigrationSettings,
    influx: InfluxConnectionConfig,
    *,
    no_prompt: bool,
    client: InfluxClient | None = None,
) -> MigrationPipeline:
    try:
        return MigrationPipeline(settings, influx, pattern_source=_pattern_source(no_prompt), client=client)
    except PatternConfigError as exc:
        logger.error("{}", exc)
        _exit(2)
        raise


def _preview_or_exit(pipeline: MigrationPipeline, output: Path | None) -> None:
    try:
        frame = pipeline.preview(output)
    except UnmatchedSeriesError as exc:
        logger.error("{}; add a pattern to the tag configuration or run without --no-prompt", exc)
        _exit(2)
        return
    for row in frame.iter_rows(named=True):
        typer.echo(f"Whisper file {row['file']}")
        typer.echo(f"  TSM key -> {row['key']}")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        help="Path to the TOML configuration file",
    ),
) -> None:
    """Initialise CLI state and logging."""

    state = CLIState(config_path=config.resolve())
    ctx.obj = state

    if ctx.invoked_subcommand == "config":
        return
    _configure_logging(_load_or_exit(state).logging_level)

    if ctx.invoked_subcommand is None:
        logger.warning("No command provided. Try 'info', 'preview' or 'run'.")
        _exit(0)


@app.command(help="Show oldest timestamp and point count of each whisper file")
def info(
    ctx: typer.Context,
    wsp_path: Path | None = typer.Option(None, "--wsp-path", help="Whisper files folder"),
) -> None:
    config = _load_or_exit(_get_state(ctx))
    root = wsp_path or config.migration.wsp_path
    if root is None:
        logger.error("--wsp-path is required")
        _exit(2)
        return

    files = find_whisper_files(root)
    if not files:
        logger.warning("No whisper files found in {}", root)
        return

    failures = 0
    for path in files:
        try:
            details = describe(path)
        except SourceReadError as exc:
            logger.error("{}", exc)
            failures += 1
            continue
        oldest = datetime.fromtimestamp(details.oldest, tz=timezone.utc)
        typer.echo(f"Whisper file : {path}")
        typer.echo(f"Oldest data  : {oldest.isoformat()}")
        typer.echo(f"Points       : {details.point_count}")
        typer.echo(f"Archives     : {details.archive_count}")
        typer.echo("-" * 72)

    if failures:
        _exit(1)


@app.command(help="Resolve the series key of every whisper file and update the pattern file")
def preview(
    ctx: typer.Context,
    wsp_path: Path | None = typer.Option(None, "--wsp-path", help="Whisper files folder"),
    tagconfig: Path | None = typer.Option(None, "--tagconfig", help="JSON file holding the tag patterns"),
    output: Path | None = typer.Option(None, "--output", help="Write the preview table as CSV"),
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Fail instead of prompting for unmatched files"),
) -> None:
    config = _load_or_exit(_get_state(ctx))
    settings = _override(config.migration, wsp_path=wsp_path, tag_config=tagconfig)
    if settings.wsp_path is None:
        logger.error("--wsp-path is required")
        _exit(2)

    pipeline = _build_pipeline(settings, config.influx, no_prompt=no_prompt)
    if not pipeline.discover():
        logger.warning("No whisper files found in {}", settings.wsp_path)
        return
    _preview_or_exit(pipeline, output)


@app.command(help="Preview, confirm and migrate whisper files into InfluxDB")
def run(
    ctx: typer.Context,
    mode: str | None = typer.Option(None, "--mode", help="'tsm' to write TSM files, 'remote' to use the HTTP API"),
    wsp_path: Path | None = typer.Option(None, "--wsp-path", help="Whisper files folder"),
    influx_data_dir: Path | None = typer.Option(None, "--influx-data-dir", help="InfluxDB data directory"),
    from_date: str | None = typer.Option(None, "--from", help="Start date in YYYY-MM-DD format"),
    until_date: str | None = typer.Option(None, "--until", help="End date in YYYY-MM-DD format (defaults to now)"),
    dbname: str | None = typer.Option(None, "--dbname", help="Destination database"),
    retention_policy: str | None = typer.Option(None, "--retention-policy", help="Destination retention policy"),
    tagconfig: Path | None = typer.Option(None, "--tagconfig", help="JSON file holding the tag patterns"),
    host: str | None = typer.Option(None, "--host", help="InfluxDB host, e.g. http://localhost"),
    port: int | None = typer.Option(None, "--port", help="InfluxDB HTTP port"),
    username: str | None = typer.Option(None, "--username", help="InfluxDB username"),
    password: str | None = typer.Option(None, "--password", help="InfluxDB password or env:VAR_NAME"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing TSM files"),
    strict: bool | None = typer.Option(
        None,
        "--strict/--no-strict",
        help="Abort on the first source or destination error",
    ),
    report: Path | None = typer.Option(None, "--report", help="Write the migration report as JSON"),
    preview_output: Path | None = typer.Option(None, "--preview-output", help="Write the preview table as CSV"),
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Fail instead of prompting for unmatched files"),
) -> None:
    config = _load_or_exit(_get_state(ctx))
    settings: MigrationSettings = _override(
        config.migration,
        mode=mode,
        wsp_path=wsp_path,
        influx_data_dir=influx_data_dir,
        from_date=from_date,
        until_date=until_date,
        database=dbname,
        retention_policy=retention_policy,
        tag_config=tagconfig,
        force=force or None,
        strict=strict,
        report_path=report,
    )
    influx: InfluxConnectionConfig = _override(
        config.influx,
        host=host,
        port=port,
        username=username,
        password=password,
    )
    try:
        settings.validate_for_run()
        client = InfluxClient.from_config(influx)
    except (ValueError, EnvironmentError) as exc:
        logger.error("{}", exc)
        _exit(2)
        return

    pipeline = _build_pipeline(settings, influx, no_prompt=no_prompt, client=client)
    aborted = False
    try:
        if not pipeline.discover():
            logger.warning("No whisper files found in {}", settings.wsp_path)
            return
        _preview_or_exit(pipeline, preview_output)

        if not yes and not typer.confirm("Do you want to continue the migration?"):
            logger.info("Migration cancelled")
            return

        try:
            pipeline.run()
        except MigrationAborted as exc:
            logger.error("Migration aborted: {}", exc)
            aborted = True
    finally:
        pipeline.close()

    for line in pipeline.summary_lines():
        typer.echo(line)
    if settings.report_path is not None:
        pipeline.write_report(settings.report_path)

    if aborted or pipeline.context.failures:
        _exit(1)


@config_app.command(help="Validate the configuration file")
def check(
    ctx: typer.Context,
    format: str = typer.Option(  # noqa: A002 - match CLI option name
        "text",
        "--format",
        case_sensitive=False,
        help="Output format for validation results",
        callback=_normalize_format,
    ),
) -> None:
    state = _get_state(ctx)
    result, exit_code, _ = check_config(state.config_path)

    if format == "json":
        print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
        _exit(exit_code)

    if result["status"] == "ok":
        logger.info("Configuration OK: {}", result["config_path"])
        for warning in result["warnings"]:
            logger.warning(warning)
    else:
        error: dict[str, Any] = result["error"]
        logger.error(
            "Configuration error ({}) for {}: {}",
            error["type"],
            result["config_path"],
            error["message"],
        )
        for detail in error.get("details", []):
            location = detail["loc"] or "<root>"
            logger.error("  - {}: {} ({})", location, detail["message"], detail["type"])

    _exit(exit_code)


def main(argv: list[str] | None = None) -> int:
    """Entry point compatible with setuptools console scripts."""

    try:
        result = app(args=argv, standalone_mode=False)
    except typer.Exit as exc:  # pragma: no cover - Typer translates exit codes
        return exc.exit_code
    if isinstance(result, int):
        return result
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
