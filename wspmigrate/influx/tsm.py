"""Writer for InfluxDB TSM1 files holding float series.

File layout::

    header   magic (u32) | version (u8)
    blocks   crc32 (u32) | type (u8) | len(ts) (uvarint) | timestamps | values
    index    per key: len (u16) | key | type (u8) | count (u16) | entries
             entry: min time (i64) | max time (i64) | offset (i64) | size (u32)
    footer   index offset (u64)

Timestamps are stored uncompressed as first value plus deltas; values use
the Gorilla XOR float encoding terminated by the engine's NaN sentinel.
"""

from __future__ import annotations

import math
import struct
import zlib
from pathlib import Path
from typing import BinaryIO, Sequence

from loguru import logger

from wspmigrate.series.models import Point

MAGIC = 0x16D116D1
VERSION = 1
BLOCK_FLOAT64 = 0
MAX_POINTS_PER_BLOCK = 1000
MAX_KEY_LENGTH = 0xFFFF
MAX_INDEX_ENTRIES = 0xFFFF
NANOS_PER_SECOND = 1_000_000_000

_TIME_UNCOMPRESSED = 0
_FLOAT_GORILLA = 1
_NAN_SENTINEL = 0x7FF8000000000001
_U64_MASK = 0xFFFFFFFFFFFFFFFF

_HEADER = struct.Struct(">IB")
_CHECKSUM = struct.Struct(">I")
_INDEX_KEY_HEADER = struct.Struct(">H")
_INDEX_BLOCK_HEADER = struct.Struct(">BH")
_INDEX_ENTRY = struct.Struct(">qqqI")
_FOOTER = struct.Struct(">Q")
_U64 = struct.Struct(">Q")
_F64 = struct.Struct(">d")


class TSMWriteError(RuntimeError):
    """Raised when a TSM file cannot be encoded or written."""


class _BitWriter:
    """Most-significant-bit-first bit stream."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._current = 0
        self._count = 0

    def write_bit(self, bit: int) -> None:
        self._current = (self._current << 1) | (bit & 1)
        self._count += 1
        if self._count == 8:
            self._buffer.append(self._current)
            self._current = 0
            self._count = 0

    def write_bits(self, value: int, width: int) -> None:
        for shift in range(width - 1, -1, -1):
            self.write_bit((value >> shift) & 1)

    def getvalue(self) -> bytes:
        if self._count:
            return bytes(self._buffer) + bytes([self._current << (8 - self._count)])
        return bytes(self._buffer)


def _leading_zeros(value: int) -> int:
    return 64 - value.bit_length()


def _trailing_zeros(value: int) -> int:
    return (value & -value).bit_length() - 1


def _float_bits(value: float) -> int:
    return _U64.unpack(_F64.pack(value))[0]


def encode_timestamps(timestamps: Sequence[int]) -> bytes:
    """Encode nanosecond timestamps as first value followed by raw deltas."""

    out = bytearray([_TIME_UNCOMPRESSED << 4])
    previous = 0
    for position, timestamp in enumerate(timestamps):
        delta = timestamp if position == 0 else timestamp - previous
        out += _U64.pack(delta & _U64_MASK)
        previous = timestamp
    return bytes(out)


def encode_floats(values: Sequence[float]) -> bytes:
    """Gorilla XOR encoding of ``values`` followed by the NaN end marker."""

    stream = _BitWriter()
    previous: int | None = None
    leading: int | None = None
    trailing = 0

    for raw in [_float_bits(float(v)) for v in values] + [_NAN_SENTINEL]:
        if previous is None:
            stream.write_bits(raw, 64)
            previous = raw
            continue
        delta = raw ^ previous
        if delta == 0:
            stream.write_bit(0)
        else:
            stream.write_bit(1)
            new_leading = min(_leading_zeros(delta), 31)
            new_trailing = _trailing_zeros(delta)
            if leading is not None and new_leading >= leading and new_trailing >= trailing:
                stream.write_bit(0)
                stream.write_bits(delta >> trailing, 64 - leading - trailing)
            else:
                leading, trailing = new_leading, new_trailing
                stream.write_bit(1)
                stream.write_bits(leading, 5)
                significant = 64 - leading - trailing
                # 64 significant bits do not fit in 6 bits; readers map 0 back to 64.
                stream.write_bits(significant & 0x3F, 6)
                stream.write_bits(delta >> trailing, significant)
        previous = raw

    return bytes([_FLOAT_GORILLA << 4]) + stream.getvalue()


def _uvarint(value: int) -> bytes:
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def encode_float_block(timestamps: Sequence[int], values: Sequence[float]) -> bytes:
    """Pack one block: type byte, timestamp section length, timestamps, values."""

    if len(timestamps) != len(values):
        raise TSMWriteError("timestamps and values differ in length")
    if any(math.isnan(value) for value in values):
        raise TSMWriteError("NaN values cannot be stored in TSM float blocks")
    ts_bytes = encode_timestamps(timestamps)
    return bytes([BLOCK_FLOAT64]) + _uvarint(len(ts_bytes)) + ts_bytes + encode_floats(values)


class TSMWriter:
    """Streams float blocks into a TSM file and writes the index on demand.

    Keys may be written in any order and more than once; the index is sorted
    by key when :meth:`write_index` runs, with each key's blocks ordered by
    their minimum time.
    """

    def __init__(self, fh: BinaryIO):
        self._fh = fh
        self._offset = 0
        self._index: dict[bytes, list[tuple[int, int, int, int]]] = {}
        self._index_written = False
        self._write(_HEADER.pack(MAGIC, VERSION))

    @classmethod
    def create(cls, path: Path) -> "TSMWriter":
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(path.open("wb"))

    @property
    def key_count(self) -> int:
        return len(self._index)

    def write(self, key: str, points: Sequence[Point]) -> None:
        """Append ``points`` (epoch seconds, value) for ``key``."""

        if not points:
            return
        if self._index_written:
            raise TSMWriteError("index already written")
        key_bytes = key.encode("utf-8")
        if len(key_bytes) > MAX_KEY_LENGTH:
            raise TSMWriteError(f"key too long ({len(key_bytes)} bytes): {key[:80]}")

        entries = self._index.setdefault(key_bytes, [])
        for start in range(0, len(points), MAX_POINTS_PER_BLOCK):
            chunk = points[start : start + MAX_POINTS_PER_BLOCK]
            timestamps = [int(ts) * NANOS_PER_SECOND for ts, _ in chunk]
            block = encode_float_block(timestamps, [value for _, value in chunk])
            offset = self._offset
            self._write(_CHECKSUM.pack(zlib.crc32(block)) + block)
            entries.append((min(timestamps), max(timestamps), offset, _CHECKSUM.size + len(block)))

        if len(entries) > MAX_INDEX_ENTRIES:
            raise TSMWriteError(f"too many blocks for key {key}")

    def write_index(self) -> None:
        """Write the index and footer; refuses to index an empty file."""

        if not self._index:
            raise TSMWriteError("no values written")
        index_offset = self._offset
        for key_bytes in sorted(self._index):
            entries = sorted(self._index[key_bytes], key=lambda entry: entry[0])
            chunk = bytearray(_INDEX_KEY_HEADER.pack(len(key_bytes)))
            chunk += key_bytes
            chunk += _INDEX_BLOCK_HEADER.pack(BLOCK_FLOAT64, len(entries))
            for entry in entries:
                chunk += _INDEX_ENTRY.pack(*entry)
            self._write(bytes(chunk))
        self._write(_FOOTER.pack(index_offset))
        self._index_written = True
        logger.debug("TSM index written for {} keys at offset {}", len(self._index), index_offset)

    def close(self) -> None:
        self._fh.flush()
        self._fh.close()

    def _write(self, data: bytes) -> None:
        try:
            self._fh.write(data)
        except OSError as exc:
            raise TSMWriteError(f"write failed: {exc}") from exc
        self._offset += len(data)


__all__ = [
    "MAGIC",
    "MAX_POINTS_PER_BLOCK",
    "NANOS_PER_SECOND",
    "TSMWriteError",
    "TSMWriter",
    "encode_float_block",
    "encode_floats",
    "encode_timestamps",
]
