"""Shared helpers for CLI tests."""

from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path

from loguru import logger


@contextmanager
def logger_to_stderr(level: str = "INFO"):
    """Temporarily route Loguru output to stderr for assertion."""

    handler_id = logger.add(sys.stderr, level=level)
    try:
        yield
    finally:
        logger.remove(handler_id)


def write_config(path: Path, *, migration: dict[str, object], influx: dict[str, object] | None = None) -> Path:
    """Write a TOML configuration with flat ``[migration]`` and ``[influx]`` tables."""

    lines = ['logging_level = "INFO"', "", "[migration]"]
    lines.extend(f"{key} = {_toml_value(value)}" for key, value in migration.items())
    if influx:
        lines.extend(["", "[influx]"])
        lines.extend(f"{key} = {_toml_value(value)}" for key, value in influx.items())
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return '"' + str(value).replace("\\", "\\\\") + '"'
