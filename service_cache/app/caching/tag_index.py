"""
Persisted tag -> keys index.

The whole index lives in one JSON blob (``<namespace>/tags/tags.json``) so
enumerating tags is a single read. Every mutation is a read-modify-write of
that blob with no lock: two writers racing on the same index can drop each
other's update. A lost update only costs index membership (the cache entry
itself survives), so a later revalidation may miss that key.
"""

import json
from typing import Dict, Iterable, List

from shared.errors import StorageError
from shared.logging import get_logger
from ..storage.base import StorageBackend

TAG_INDEX_BLOB = "tags/tags.json"


class TagIndex:
    """Inverted index from tag to the keys currently carrying it."""

    def __init__(self, backend: StorageBackend, namespace: str = "cache"):
        self.backend = backend
        self.blob = f"{namespace}/{TAG_INDEX_BLOB}"
        self.logger = get_logger("cache.tag_index")
        self._initialized = False

    async def ensure(self) -> None:
        """Create an empty index blob if none exists yet."""
        if self._initialized:
            return
        if await self.backend.get(self.blob) is None:
            # Concurrent creators all write the same empty mapping
            await self._write({})
            self.logger.info("Created empty tag index", blob=self.blob)
        self._initialized = True

    async def read(self) -> Dict[str, List[str]]:
        """Return the current mapping; a missing or corrupt blob reads as empty."""
        data = await self.backend.get(self.blob)
        if data is None:
            return {}
        try:
            mapping = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError, RecursionError) as exc:
            self.logger.warning("Tag index is corrupt, treating as empty", error=str(exc))
            return {}
        if not isinstance(mapping, dict):
            return {}
        return {
            str(tag): [str(key) for key in keys]
            for tag, keys in mapping.items()
            if isinstance(keys, list)
        }

    async def keys_for(self, tag: str) -> List[str]:
        mapping = await self.read()
        return list(mapping.get(tag, []))

    async def add(self, key: str, tags: Iterable[str]) -> None:
        """Record ``key`` under exactly ``tags``.

        The key is appended to each listed tag and dropped from any tag it
        no longer carries, since an overwrite replaces the tag set.
        """
        tags = list(tags)
        wanted = set(tags)
        mapping = await self.read()

        for tag in list(mapping):
            if tag not in wanted and key in mapping[tag]:
                mapping[tag] = [k for k in mapping[tag] if k != key]
                if not mapping[tag]:
                    del mapping[tag]

        for tag in tags:
            keys = mapping.setdefault(tag, [])
            if key not in keys:
                keys.append(key)

        await self._write(mapping)

    async def bulk_remove(self, keys: Iterable[str]) -> int:
        """Remove ``keys`` from every tag in one rewrite.

        Returns the number of tags dropped because they became empty.
        """
        removed = set(keys)
        if not removed:
            return 0

        mapping = await self.read()

        updated: Dict[str, List[str]] = {}
        dropped = 0
        changed = False
        for tag, tag_keys in mapping.items():
            remaining = [k for k in tag_keys if k not in removed]
            if len(remaining) != len(tag_keys):
                changed = True
            if remaining:
                updated[tag] = remaining
            else:
                dropped += 1

        if changed:
            await self._write(updated)
        return dropped

    async def _write(self, mapping: Dict[str, List[str]]) -> None:
        try:
            payload = json.dumps(mapping, indent=2).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise StorageError("Tag index is not serializable", {"error": str(exc)})
        await self.backend.put(self.blob, payload)
