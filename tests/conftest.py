"""Shared fixtures: real whisper files in a temporary tree."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Sequence

import pytest
import whisper

from wspmigrate.config import TagPattern, TagTemplate

MINUTE_ARCHIVE = (60, 2880)

MakeWhisper = Callable[..., Path]


@pytest.fixture()
def now_epoch() -> int:
    """Current time aligned to the one-minute archive step."""
    return int(time.time()) // 60 * 60


@pytest.fixture()
def whisper_root(tmp_path: Path) -> Path:
    root = tmp_path / "whisper"
    root.mkdir()
    return root


@pytest.fixture()
def make_whisper(whisper_root: Path) -> MakeWhisper:
    def _make(
        relative: str,
        points: Sequence[tuple[int, float]] = (),
        *,
        archives: Sequence[tuple[int, int]] = (MINUTE_ARCHIVE,),
    ) -> Path:
        path = whisper_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        whisper.create(str(path), list(archives))
        if points:
            whisper.update_many(str(path), list(points))
        return path

    return _make


@pytest.fixture()
def host_pattern() -> TagPattern:
    return TagPattern(
        pattern="carbon.#HOST.load",
        measurement="load",
        tags=[TagTemplate(tagkey="host", tagvalue="#HOST")],
        field="value",
    )
