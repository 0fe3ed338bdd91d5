"""Test doubles shared across the suite."""

from __future__ import annotations

import struct
import threading
from concurrent.futures import Executor, Future
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Sequence

from wspmigrate.config import TagPattern
from wspmigrate.influx import InfluxClientError
from wspmigrate.series import Point, TimeWindow


def rfc3339(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def shard_row(shard_id: int, database: str, start: datetime, end: datetime, rp: str = "autogen") -> dict[str, Any]:
    return {
        "id": shard_id,
        "database": database,
        "retention_policy": rp,
        "start_time": rfc3339(start),
        "end_time": rfc3339(end),
        "expiry_time": rfc3339(end),
    }


class FakeInfluxClient:
    """In-memory stand-in for :class:`wspmigrate.influx.InfluxClient`."""

    def __init__(self, shard_rows: Sequence[dict[str, Any]] = (), *, fail_writes: int = 0):
        self.shard_rows = list(shard_rows)
        self.fail_writes = fail_writes
        self.databases: list[str] = []
        self.queries: list[tuple[str, str | None]] = []
        self.writes: list[dict[str, Any]] = []
        self.closed = False
        self._lock = threading.Lock()

    def create_database(self, name: str) -> None:
        self.databases.append(name)

    def query(self, statement: str, database: str | None = None) -> list[dict[str, Any]]:
        self.queries.append((statement, database))
        if statement.upper().startswith("SHOW SHARD GROUPS"):
            return [dict(row) for row in self.shard_rows]
        return []

    def write(
        self,
        lines: Sequence[str],
        database: str,
        *,
        precision: str = "s",
        retention_policy: str | None = None,
    ) -> None:
        with self._lock:
            if self.fail_writes:
                self.fail_writes -= 1
                raise InfluxClientError("write rejected")
            self.writes.append(
                {
                    "lines": list(lines),
                    "database": database,
                    "precision": precision,
                    "retention_policy": retention_policy,
                }
            )

    def close(self) -> None:
        self.closed = True

    @property
    def written_lines(self) -> list[str]:
        return [line for write in self.writes for line in write["lines"]]


class CannedPatternSource:
    """Pattern source that hands out prepared patterns in order."""

    def __init__(self, *patterns: TagPattern):
        self.patterns = list(patterns)
        self.requests: list[str] = []

    def resolve_unmatched(self, file_path: str) -> TagPattern:
        self.requests.append(file_path)
        return self.patterns.pop(0)


class FakeReader:
    """Point reader over canned data keyed by POSIX path; exceptions are raised."""

    def __init__(self, data: dict[str, list[Point] | Exception]):
        self.data = data
        self.calls: list[tuple[str, TimeWindow]] = []

    def __call__(self, path: Path, window: TimeWindow) -> list[Point]:
        self.calls.append((path.as_posix(), window))
        result = self.data[path.as_posix()]
        if isinstance(result, Exception):
            raise result
        return [point for point in result if window.contains(point[0])]


class ImmediateExecutor(Executor):
    """Runs submitted work inline so dispatch order is deterministic."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


def parse_tsm(data: bytes) -> dict[str, list[tuple[int, int]]]:
    """Index of a TSM file as ``{key: [(min_time, max_time) per block]}``."""

    (index_offset,) = struct.unpack(">Q", data[-8:])
    index: dict[str, list[tuple[int, int]]] = {}
    pos = index_offset
    while pos < len(data) - 8:
        (key_len,) = struct.unpack(">H", data[pos : pos + 2])
        key = data[pos + 2 : pos + 2 + key_len].decode()
        pos += 2 + key_len
        _, count = struct.unpack(">BH", data[pos : pos + 3])
        pos += 3
        entries = []
        for _ in range(count):
            min_time, max_time, _, _ = struct.unpack(">qqqI", data[pos : pos + 28])
            entries.append((min_time, max_time))
            pos += 28
        index[key] = entries
    return index
