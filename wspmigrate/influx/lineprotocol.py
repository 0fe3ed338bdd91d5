"""InfluxDB line protocol formatting."""

from __future__ import annotations

import math
from typing import Iterable

_MEASUREMENT_ESCAPES = str.maketrans({",": r"\,", " ": r"\ "})
_KEY_ESCAPES = str.maketrans({",": r"\,", "=": r"\=", " ": r"\ "})


def escape_measurement(value: str) -> str:
    return value.translate(_MEASUREMENT_ESCAPES)


def escape_key(value: str) -> str:
    """Escape a tag key, tag value or field key."""
    return value.translate(_KEY_ESCAPES)


def format_point(
    measurement: str,
    tags: Iterable[tuple[str, str]],
    field: str,
    timestamp: int,
    value: float,
) -> str:
    """Render one float point, e.g. ``load,host=host1 value=1.0 100``.

    Empty tag values are dropped since the engine rejects them.
    """

    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"Cannot encode non-finite value {value!r} for {measurement}")
    parts = [escape_measurement(measurement)]
    parts.extend(f"{escape_key(key)}={escape_key(tag_value)}" for key, tag_value in tags if tag_value)
    return f"{','.join(parts)} {escape_key(field)}={value!r} {int(timestamp)}"


__all__ = ["escape_key", "escape_measurement", "format_point"]
