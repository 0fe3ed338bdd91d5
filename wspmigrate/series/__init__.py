"""Series identity resolution and key encoding."""

from wspmigrate.series.models import Point, PointBatch, SeriesIdentity, Shard, TimeWindow
from wspmigrate.series.keys import FIELD_SEPARATOR, encode_key
from wspmigrate.series.resolver import (
    IdentityResolver,
    PatternSource,
    UnmatchedSeriesError,
    normalize_path,
    resolve,
)

__all__ = [
    "FIELD_SEPARATOR",
    "IdentityResolver",
    "PatternSource",
    "Point",
    "PointBatch",
    "SeriesIdentity",
    "Shard",
    "TimeWindow",
    "UnmatchedSeriesError",
    "encode_key",
    "normalize_path",
    "resolve",
]
