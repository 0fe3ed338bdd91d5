"""Series key encoding for TSM files."""

from __future__ import annotations

from .models import SeriesIdentity

FIELD_SEPARATOR = "#!~#"


def encode_key(identity: SeriesIdentity, *, sort_tags: bool = False) -> str:
    """Serialise ``identity`` into the TSM series key.

    ``load`` with tag ``host=host1`` and field ``value`` becomes
    ``load,host=host1#!~#value``. Tags follow the pattern's configured order
    unless ``sort_tags`` is set, in which case they are ordered by key the way
    InfluxDB builds its own series keys.
    """

    tags = sorted(identity.tags) if sort_tags else identity.tags
    key = identity.measurement
    for tag_key, tag_value in tags:
        key += f",{tag_key}={tag_value}"
    return key + FIELD_SEPARATOR + identity.field


__all__ = ["FIELD_SEPARATOR", "encode_key"]
