"""Validate configuration files for ``wspmigrate config check``."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Union

from pydantic import ValidationError

from .app import AppConfig
from .base import load_config
from .patterns import PatternConfigError, load_patterns
from .utils import env_reference_name


def check_config(path: Path) -> tuple[dict[str, Any], int, AppConfig | None]:
    """Validate the configuration file and the pattern file it points to.

    Returns a tuple of ``(result_dict, exit_code, config_instance_or_None)``.
    """

    try:
        config = load_config(AppConfig, path)
    except FileNotFoundError as exc:
        return _error(path, "missing_file", str(exc)), 2, None
    except ValidationError as exc:
        details = [
            {
                "loc": _format_error_location(err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
        return _error(path, "validation_error", "Configuration validation failed", details=details), 3, None
    except PermissionError as exc:
        return _error(path, "permission_error", str(exc)), 2, None
    except ValueError as exc:
        return _error(path, "invalid_format", str(exc)), 1, None

    tag_config = config.migration.tag_config
    if tag_config is not None and tag_config.exists():
        try:
            load_patterns(tag_config)
        except PatternConfigError as exc:
            return _error(path, "pattern_error", str(exc)), 2, None

    result = {
        "status": "ok",
        "config_path": str(path),
        "warnings": _collect_warnings(config),
    }
    return result, 0, config


def _error(path: Path, kind: str, message: str, *, details: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"type": kind, "message": message}
    if details is not None:
        error["details"] = details
    return {"status": "error", "config_path": str(path), "error": error}


def _format_error_location(location: Iterable[Union[int, str]]) -> str:
    return ".".join(str(part) for part in location)


def _collect_warnings(config: AppConfig) -> list[str]:
    warnings: list[str] = []
    migration = config.migration

    if migration.mode == "tsm" and migration.influx_data_dir is None:
        warnings.append("'migration.influx_data_dir' is not set; it is required for mode 'tsm'")
    if migration.tag_config is None:
        warnings.append("'migration.tag_config' is not set; every file will need an interactive pattern")
    elif not migration.tag_config.exists():
        warnings.append(f"Pattern file {migration.tag_config} does not exist yet; it will be created")
    if migration.wsp_path is not None and not migration.wsp_path.exists():
        warnings.append(f"Whisper directory {migration.wsp_path} does not exist")
    password = config.influx.password
    if password:
        variable = env_reference_name(password)
        if variable is None:
            warnings.append("'influx.password' is stored in plain text; prefer an 'env:VAR_NAME' reference")
        elif not os.environ.get(variable):
            warnings.append(f"'influx.password' references {variable}, which is not set")

    return warnings


__all__ = ["check_config"]
