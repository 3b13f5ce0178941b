"""
Partitioned cache store.

Entries live in two independent key spaces (FETCH and ROUTE) on a single
storage backend. A key lives in at most one partition at a time: writing it
to one partition first removes it from the other. Tags map to keys through
the persisted TagIndex, so invalidating a tag touches only the keys that
carry it.

Public operations never raise. Backend, codec and index failures are
logged and surface as a miss, a failed write or a zero count.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set, Union

from shared.errors import CodecError
from shared.logging import get_logger
from ..serialization import decode_document, encode_document
from ..storage.base import BLOB_SUFFIX, StorageBackend, blob_name
from .models import CacheEntry, Partition, Revalidate, StoredValue, normalize_tags, now_ms
from .tag_index import TagIndex

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.edge_invalidation_client import EdgeInvalidationNotifier
    from shared.metrics import MetricsCollector


async def delete_blobs(backend: StorageBackend, names: Iterable[str], logger) -> List[str]:
    """Delete blobs concurrently and return the names actually removed.

    Failures are logged per blob; the rest of the batch still runs.
    """
    names = list(names)
    if not names:
        return []

    results = await asyncio.gather(
        *(backend.delete(name) for name in names),
        return_exceptions=True,
    )

    deleted = []
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            logger.error("Blob delete failed", blob=name, error=str(result))
        elif result:
            deleted.append(name)
    return deleted


class PartitionedCacheStore:
    """Tag-addressable cache over a ``StorageBackend``."""

    def __init__(
        self,
        backend: StorageBackend,
        namespace: str = "cache",
        tag_index: Optional[TagIndex] = None,
        notifier: Optional["EdgeInvalidationNotifier"] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.backend = backend
        self.namespace = namespace
        self.tag_index = tag_index or TagIndex(backend, namespace)
        self.notifier = notifier
        self.metrics = metrics
        self.logger = get_logger("cache.store")

    def blob_for(self, key: str, partition: Partition) -> str:
        return blob_name(self.namespace, partition.prefix, key)

    def _record(self, metric: str, amount: float = 1, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric, amount, **labels)

    async def get(self, key: str, partition: Partition = Partition.ROUTE) -> Optional[CacheEntry]:
        """Read ``key`` from one partition; anything unusable is a miss."""
        entry = await self._read_entry(self.blob_for(key, partition), partition, expected_key=key)
        if entry is None:
            self._record("cache_misses_total", partition=partition.value)
            return None

        self._record("cache_hits_total", partition=partition.value)
        return entry

    async def _read_entry(
        self,
        blob: str,
        partition: Partition,
        expected_key: Optional[str] = None,
    ) -> Optional[CacheEntry]:
        try:
            data = await self.backend.get(blob)
        except Exception as e:
            self.logger.error("Cache read error", blob=blob, error=str(e))
            return None

        if data is None:
            return None

        try:
            document = decode_document(data)
            if expected_key is not None:
                document.setdefault("key", expected_key)
            entry = CacheEntry.from_document(document, partition)
        except CodecError as e:
            self.logger.warning("Undecodable cache entry", blob=blob, error=e.message)
            return None
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning("Malformed cache entry", blob=blob, error=str(e))
            return None

        if expected_key is not None and entry.key != expected_key:
            # Two keys sanitize to the same blob name
            self.logger.warning(
                "Cache key collision, treating as miss",
                key=expected_key,
                stored_key=entry.key,
                blob=blob,
            )
            return None
        return entry

    async def set(
        self,
        key: str,
        stored_value: StoredValue,
        tags: Iterable[str] = (),
        revalidate: Revalidate = None,
    ) -> bool:
        """Write ``key`` into its partition, relocating it if needed."""
        partition = stored_value.partition
        tags = normalize_tags(tags)

        try:
            # At most one live entry per key across partitions
            if await self.backend.delete(self.blob_for(key, partition.other)):
                self.logger.debug("Relocated cache key", key=key, to=partition.value)

            entry = CacheEntry(
                key=key,
                value=stored_value.payload,
                last_modified_at=now_ms(),
                partition=partition,
                tags=tags,
                revalidate=revalidate,
            )
            await self.backend.put(self.blob_for(key, partition), encode_document(entry.to_document()))

            if tags:
                await self.tag_index.add(key, tags)
            else:
                # An untagged overwrite drops the key from its old tags
                await self.tag_index.bulk_remove([key])

        except Exception as e:
            self.logger.error("Cache set error", key=key, partition=partition.value, error=str(e))
            self._record("cache_writes_total", partition=partition.value, result="error")
            return False

        self._record("cache_writes_total", partition=partition.value, result="success")
        return True

    async def delete(self, key: str) -> bool:
        """Remove ``key`` from both partitions and from the tag index."""
        try:
            deleted = await delete_blobs(
                self.backend,
                [self.blob_for(key, partition) for partition in Partition],
                self.logger,
            )
            await self.tag_index.bulk_remove([key])
        except Exception as e:
            self.logger.error("Cache delete error", key=key, error=str(e))
            return False

        if deleted:
            self._record("cache_invalidations_total", len(deleted), reason="delete")
        return bool(deleted)

    async def revalidate_tag(self, tag_or_tags: Union[str, Iterable[str]]) -> int:
        """Delete every entry carrying any of the tags.

        Returns the number of entries actually deleted. Keys listed in the
        index whose blobs are already gone are pruned from the index but
        not counted.
        """
        tags = normalize_tags(tag_or_tags)
        if not tags:
            return 0

        try:
            mapping = await self.tag_index.read()

            keys: List[str] = []
            seen: Set[str] = set()
            for tag in tags:
                for key in mapping.get(tag, []):
                    if key not in seen:
                        seen.add(key)
                        keys.append(key)

            processed: List[str] = []
            deleted: List[str] = []
            for key in keys:
                try:
                    removed = await self.backend.delete(self.blob_for(key, Partition.FETCH))
                    if not removed:
                        removed = await self.backend.delete(self.blob_for(key, Partition.ROUTE))
                except Exception as e:
                    # Left in the index so a later revalidation retries it
                    self.logger.error("Tag revalidation delete failed", key=key, error=str(e))
                    continue
                processed.append(key)
                if removed:
                    deleted.append(key)

            await self.tag_index.bulk_remove(processed)

        except Exception as e:
            self.logger.error("Tag revalidation error", tags=list(tags), error=str(e))
            return 0

        self.logger.info("Revalidated tags", tags=list(tags), deleted=len(deleted), processed=len(processed))
        if deleted:
            self._record("cache_invalidations_total", len(deleted), reason="tag")
            if self.notifier:
                self.notifier.notify_keys(deleted, tags)
        return len(deleted)

    def reset_request_cache(self) -> None:
        """Nothing is cached per request."""
        return None

    def _key_from_blob(self, blob: str, partition: Partition) -> str:
        name = blob[len(f"{self.namespace}/{partition.prefix}"):]
        if name.endswith(BLOB_SUFFIX):
            name = name[: -len(BLOB_SUFFIX)]
        return name

    async def get_stats(self) -> Dict[str, Any]:
        """Describe every stored entry in both partitions."""
        entries: List[Dict[str, Any]] = []

        for partition in Partition:
            try:
                blobs = await self.backend.list(f"{self.namespace}/{partition.prefix}")
            except Exception as e:
                self.logger.error("Cache stats listing error", partition=partition.value, error=str(e))
                continue

            for blob in blobs:
                entry = await self._read_entry(blob, partition)
                if entry is not None and entry.key:
                    entries.append(entry.summary())
                else:
                    entries.append({
                        "key": self._key_from_blob(blob, partition),
                        "tags": [],
                        "lastModified": None,
                        "type": partition.value,
                    })

        return {
            "size": len(entries),
            "keys": [f"{entry['type']}:{entry['key']}" for entry in entries],
            "entries": entries,
        }

    async def clear(self, static_routes: Iterable[str] = ()) -> int:
        """Delete every entry except statically generated routes.

        Returns the number of blobs deleted.
        """
        static = set(static_routes)
        preserved = {self.blob_for(route, Partition.ROUTE) for route in static}

        try:
            doomed: List[str] = []
            for partition in Partition:
                blobs = await self.backend.list(f"{self.namespace}/{partition.prefix}")
                doomed.extend(blob for blob in blobs if blob not in preserved)

            deleted = await delete_blobs(self.backend, doomed, self.logger)

            mapping = await self.tag_index.read()
            stale = {key for keys in mapping.values() for key in keys if key not in static}
            await self.tag_index.bulk_remove(stale)

        except Exception as e:
            self.logger.error("Cache clear error", error=str(e))
            return 0

        self.logger.info("Cache cleared", cleared=len(deleted), preserved_static=len(static))
        if deleted:
            self._record("cache_invalidations_total", len(deleted), reason="clear")
            if self.notifier:
                self.notifier.notify_all()
        return len(deleted)
