"""Resolve whisper file paths into destination series identities."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol, Sequence

from loguru import logger

from wspmigrate.config.patterns import SEGMENT_DELIMITER, TagPattern

from .keys import encode_key
from .models import SeriesIdentity

WHISPER_EXTENSION = ".wsp"
_KEY_UNSAFE_CHARS = (",", " ")


class UnmatchedSeriesError(RuntimeError):
    """Raised when no pattern matches and no pattern source can supply one."""


class PatternSource(Protocol):
    def resolve_unmatched(self, file_path: str) -> TagPattern:
        """Return a new pattern for a file that matched none of the configured ones."""
        ...


def normalize_path(file_path: str | Path) -> str:
    """Turn a whisper path into the dotted key patterns are matched against.

    ``carbon/host1/load.wsp`` becomes ``carbon.host1.load``; commas and spaces
    would corrupt the series key and are replaced with underscores.
    """

    key = str(file_path)
    if key.endswith(WHISPER_EXTENSION):
        key = key[: -len(WHISPER_EXTENSION)]
    if os.sep != "/":
        key = key.replace(os.sep, "/")
    key = key.replace("/", SEGMENT_DELIMITER)
    for char in _KEY_UNSAFE_CHARS:
        key = key.replace(char, "_")
    return key


def resolve(file_path: str | Path, patterns: Sequence[TagPattern]) -> SeriesIdentity | None:
    """Resolve ``file_path`` with the first pattern whose prefix occurs in it.

    Placeholder ``i`` binds to segment ``i - 1`` of the text following the
    matched prefix; the last segment is the measurement. Tag templates that do
    not name a bound placeholder produce no tag. Returns ``None`` when no
    pattern matches.
    """

    key = normalize_path(file_path)
    for pattern in patterns:
        index = key.find(pattern.prefix)
        if index < 0:
            continue
        remainder = key[index + len(pattern.prefix) :]
        return _bind(pattern, remainder.split(SEGMENT_DELIMITER))
    return None


def _bind(pattern: TagPattern, segments: list[str]) -> SeriesIdentity:
    bound: dict[str, str] = {}
    for position, name in enumerate(pattern.placeholders):
        if position < len(segments):
            bound.setdefault(name, segments[position])

    tags: dict[str, str] = {}
    for template in pattern.tags:
        placeholder = template.placeholder
        if placeholder is None or placeholder not in bound:
            continue
        tags[template.tagkey] = bound[placeholder]

    return SeriesIdentity(
        measurement=segments[-1],
        tags=tuple(tags.items()),
        field=pattern.field,
    )


def constant_identity(pattern: TagPattern) -> SeriesIdentity:
    """Identity of a pattern taken verbatim: literal measurement and literal tags."""

    tags = {t.tagkey: t.tagvalue for t in pattern.tags if t.placeholder is None}
    return SeriesIdentity(measurement=pattern.measurement, tags=tuple(tags.items()), field=pattern.field)


class IdentityResolver:
    """Per-run resolver that caches identities and recovers unmatched files.

    ``patterns`` and ``cache`` are owned by the run context and shared by
    reference, so patterns added while recovering are visible to later files
    and end up in the persisted pattern file.
    """

    def __init__(
        self,
        patterns: list[TagPattern],
        source: PatternSource | None = None,
        *,
        cache: dict[str, SeriesIdentity] | None = None,
        sort_tags: bool = False,
    ) -> None:
        self.patterns = patterns
        self.source = source
        self.cache = cache if cache is not None else {}
        self.sort_tags = sort_tags

    def identify(self, file_path: str | Path) -> SeriesIdentity:
        cache_key = str(file_path)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        identity = resolve(file_path, self.patterns)
        if identity is None:
            identity = self._recover(cache_key)
        self.cache[cache_key] = identity
        return identity

    def key_for(self, file_path: str | Path) -> str:
        return encode_key(self.identify(file_path), sort_tags=self.sort_tags)

    def _recover(self, file_path: str) -> SeriesIdentity:
        if self.source is None:
            raise UnmatchedSeriesError(f"No tag pattern matches {file_path}")

        logger.warning("No tag pattern matches {}; requesting a new one", file_path)
        pattern = self.source.resolve_unmatched(file_path)
        self.patterns.append(pattern)

        identity = resolve(file_path, self.patterns)
        if identity is None:
            logger.warning(
                "Pattern '{}' does not match {}; using its measurement and tags verbatim",
                pattern.pattern,
                file_path,
            )
            identity = constant_identity(pattern)
        return identity


__all__ = [
    "IdentityResolver",
    "PatternSource",
    "UnmatchedSeriesError",
    "WHISPER_EXTENSION",
    "constant_identity",
    "normalize_path",
    "resolve",
]
