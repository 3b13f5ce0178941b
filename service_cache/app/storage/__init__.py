"""
Storage backends for the cache service.

All backends expose the same async blob contract (``StorageBackend``):

- filesystem: one JSON file per blob under ``CACHE_DIR``
- object_store: one object per blob in ``CACHE_BUCKET``
- memory: per-instance dict, for tests and embedded use

``create_backend`` picks one from configuration; the cache store never
inspects which implementation it was given.
"""

from shared.config import CacheConfig
from shared.errors import ConfigurationError
from .base import StorageBackend, blob_name, sanitize_key
from .filesystem import FileSystemBackend
from .memory import MemoryBackend
from .object_store import ObjectStorageBackend


def create_backend(config: CacheConfig) -> StorageBackend:
    """Build the storage backend selected by ``config.backend``."""
    backend = (config.backend or "").strip().lower()

    if backend == "filesystem":
        return FileSystemBackend(config.dir)
    if backend == "object_store":
        return ObjectStorageBackend(
            config.bucket,
            endpoint=config.object_store_endpoint,
            access_key=config.object_store_access_key,
            secret_key=config.object_store_secret_key,
            secure=config.object_store_secure,
        )
    if backend == "memory":
        return MemoryBackend()

    raise ConfigurationError(
        f"Unknown cache backend {config.backend!r}",
        {"supported": ["filesystem", "object_store", "memory"]},
    )


__all__ = [
    "StorageBackend",
    "FileSystemBackend",
    "ObjectStorageBackend",
    "MemoryBackend",
    "create_backend",
    "blob_name",
    "sanitize_key",
]
