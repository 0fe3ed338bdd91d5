"""Shard discovery and window clipping."""

from wspmigrate.shards.catalog import InfluxShardCatalog, ShardCatalog, ShardCatalogError
from wspmigrate.shards.window import clip

__all__ = ["InfluxShardCatalog", "ShardCatalog", "ShardCatalogError", "clip"]
