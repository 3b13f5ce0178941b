"""
Caching package for the Cache Service.

- models: partitions, entries and build metadata
- tag_index: persisted tag -> keys index
- store: partitioned cache store
- build_guard: route eviction on a new build
- static_routes: prerender manifest loading
- handler: host-facing cache handler
"""

from .build_guard import BuildGenerationGuard, resolve_build_id
from .handler import CacheHandler, is_fetch_context
from .models import BuildMeta, CacheEntry, Partition, StoredValue, classify_payload
from .static_routes import load_static_routes
from .store import PartitionedCacheStore
from .tag_index import TagIndex

__all__ = [
    "BuildGenerationGuard",
    "BuildMeta",
    "CacheEntry",
    "CacheHandler",
    "PartitionedCacheStore",
    "Partition",
    "StoredValue",
    "TagIndex",
    "classify_payload",
    "is_fetch_context",
    "load_static_routes",
    "resolve_build_id",
]
