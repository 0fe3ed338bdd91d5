"""Tag pattern models and the JSON pattern file they are persisted in.

A pattern file is a JSON array such as::

    [
      {
        "pattern": "carbon.agents.#HOST.#METRIC",
        "measurement": "#METRIC",
        "tags": [{"tagkey": "host", "tagvalue": "#HOST"}],
        "field": "value"
      }
    ]
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import Field, TypeAdapter, ValidationError

from .base import BaseConfig

PLACEHOLDER_MARKER = "#"
SEGMENT_DELIMITER = "."


class PatternConfigError(RuntimeError):
    """Raised when the pattern file cannot be read or parsed."""


class TagTemplate(BaseConfig):
    """One tag of a pattern; ``tagvalue`` is a ``#PLACEHOLDER`` or a literal."""

    tagkey: str
    tagvalue: str

    @property
    def placeholder(self) -> str | None:
        if not self.tagvalue.startswith(PLACEHOLDER_MARKER):
            return None
        return self.tagvalue.strip(PLACEHOLDER_MARKER)


class TagPattern(BaseConfig):
    """Filename pattern describing how a whisper path maps to a series."""

    pattern: str
    measurement: str
    tags: list[TagTemplate] = Field(default_factory=list)
    field: str = "value"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TagPattern):
            return NotImplemented
        return (
            self.pattern == other.pattern
            and self.measurement == other.measurement
            and self.field == other.field
            and sorted((t.tagkey, t.tagvalue) for t in self.tags)
            == sorted((t.tagkey, t.tagvalue) for t in other.tags)
        )

    __hash__ = None  # type: ignore[assignment]

    @property
    def prefix(self) -> str:
        """Literal text before the first placeholder."""
        return self.pattern.split(PLACEHOLDER_MARKER)[0]

    @property
    def placeholders(self) -> list[str]:
        """Placeholder names in pattern order.

        ``carbon.#HOST.#METRIC`` yields ``["HOST", "METRIC"]``; anything after
        the first delimiter of a placeholder part is literal text.
        """
        parts = self.pattern.split(PLACEHOLDER_MARKER)[1:]
        return [part.strip(SEGMENT_DELIMITER).split(SEGMENT_DELIMITER)[0] for part in parts]


_PATTERN_LIST = TypeAdapter(list[TagPattern])


def load_patterns(path: Path) -> list[TagPattern]:
    """Read the pattern file; a missing file yields an empty list."""

    if not path.exists():
        logger.warning("Pattern file {} does not exist; starting with no patterns", path)
        return []
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PatternConfigError(f"Cannot read pattern file {path}: {exc}") from exc
    if not raw.strip():
        return []
    try:
        patterns = _PATTERN_LIST.validate_json(raw)
    except ValidationError as exc:
        raise PatternConfigError(f"Invalid pattern file {path}: {exc}") from exc
    logger.info("Loaded {} tag patterns from {}", len(patterns), path)
    return patterns


def save_patterns(path: Path, patterns: list[TagPattern]) -> None:
    """Rewrite the pattern file with ``patterns`` in their current order."""

    payload = [pattern.model_dump() for pattern in patterns]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info("Wrote {} tag patterns to {}", len(patterns), path)


__all__ = [
    "PLACEHOLDER_MARKER",
    "SEGMENT_DELIMITER",
    "PatternConfigError",
    "TagPattern",
    "TagTemplate",
    "load_patterns",
    "save_patterns",
]
