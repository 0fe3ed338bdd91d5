from __future__ import annotations

from pathlib import Path

import pytest

from wspmigrate.legacy import SourceReadError, describe, find_whisper_files, read_points
from wspmigrate.legacy.reader import close_whisper, fetch_range, open_whisper
from wspmigrate.series import TimeWindow

from tests.conftest import MakeWhisper


def test_find_whisper_files_is_sorted(whisper_root: Path, make_whisper: MakeWhisper) -> None:
    make_whisper("carbon/host2/load.wsp")
    make_whisper("carbon/host1/load.wsp")
    (whisper_root / "carbon" / "notes.txt").write_text("not a whisper file", encoding="utf-8")

    files = find_whisper_files(whisper_root)

    assert files == [
        whisper_root / "carbon" / "host1" / "load.wsp",
        whisper_root / "carbon" / "host2" / "load.wsp",
    ]


def test_find_whisper_files_missing_directory(tmp_path: Path) -> None:
    assert find_whisper_files(tmp_path / "absent") == []


def test_read_points_filters_window_and_drops_gaps(make_whisper: MakeWhisper, now_epoch: int) -> None:
    path = make_whisper(
        "carbon/host1/load.wsp",
        [(now_epoch - 3600, 1.0), (now_epoch - 1800, 2.0), (now_epoch - 600, 3.0)],
    )

    everything = read_points(path, TimeWindow.from_epoch(now_epoch - 7200, now_epoch + 60))
    start_inclusive = read_points(path, TimeWindow.from_epoch(now_epoch - 3600, now_epoch - 600))

    assert everything == [(now_epoch - 3600, 1.0), (now_epoch - 1800, 2.0), (now_epoch - 600, 3.0)]
    assert start_inclusive == [(now_epoch - 3600, 1.0), (now_epoch - 1800, 2.0)]


def test_fetch_range_outside_retention_is_empty(make_whisper: MakeWhisper, now_epoch: int) -> None:
    path = make_whisper("carbon/host1/load.wsp", [(now_epoch - 600, 3.0)])
    handle = open_whisper(path)
    try:
        assert fetch_range(handle, TimeWindow.from_epoch(now_epoch - 30 * 86400, now_epoch - 20 * 86400)) == []
        assert fetch_range(handle, TimeWindow.from_epoch(now_epoch, now_epoch)) == []
        assert handle.max_retention == 60 * 2880
        assert handle.first_archive_size == 2880 * 12
    finally:
        close_whisper(handle)


def test_describe_reports_oldest_and_point_count(make_whisper: MakeWhisper, now_epoch: int) -> None:
    path = make_whisper("carbon/host1/load.wsp", [(now_epoch - 3600, 1.0), (now_epoch - 600, 3.0)])

    info = describe(path, now=now_epoch)

    assert info.oldest == now_epoch - 60 * 2880
    assert info.point_count == 2
    assert info.archive_count == 1
    assert info.size_bytes == path.stat().st_size


def test_corrupt_file_raises_source_read_error(whisper_root: Path) -> None:
    path = whisper_root / "broken.wsp"
    path.write_bytes(b"\x00\x01")

    with pytest.raises(SourceReadError):
        read_points(path, TimeWindow.from_epoch(0, 100))


def test_missing_file_raises_source_read_error(whisper_root: Path) -> None:
    with pytest.raises(SourceReadError):
        read_points(whisper_root / "absent.wsp", TimeWindow.from_epoch(0, 100))


def test_unreadable_header_opens_no_handle(monkeypatch: pytest.MonkeyPatch, whisper_root: Path) -> None:
    path = whisper_root / "load.wsp"
    path.write_bytes(b"\x00" * 64)
    opened: list[Path] = []
    original_open = Path.open

    def _tracking_open(self: Path, *args, **kwargs):
        opened.append(self)
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr("wspmigrate.legacy.reader.whisper.info", lambda _path: None)
    monkeypatch.setattr(Path, "open", _tracking_open)

    with pytest.raises(SourceReadError, match="header"):
        open_whisper(path)

    assert path not in opened
