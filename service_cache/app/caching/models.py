"""
Data model for cache entries, partitions and build metadata.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple, Union

Revalidate = Union[int, float, bool, None]

FETCH_KIND = "FETCH"


class Partition(Enum):
    """The two independent key spaces of the store."""
    FETCH = "fetch"    # remote-fetch results
    ROUTE = "route"    # render/route outputs

    @property
    def prefix(self) -> str:
        """Blob prefix inside the cache namespace."""
        return f"{self.value}-cache/"

    @property
    def other(self) -> "Partition":
        return Partition.ROUTE if self is Partition.FETCH else Partition.FETCH


@dataclass(frozen=True)
class StoredValue:
    """A payload tagged with the partition it belongs to."""
    partition: Partition
    payload: Any

    @classmethod
    def fetch(cls, payload: Any) -> "StoredValue":
        return cls(Partition.FETCH, payload)

    @classmethod
    def route(cls, payload: Any) -> "StoredValue":
        return cls(Partition.ROUTE, payload)


def classify_payload(payload: Any) -> StoredValue:
    """Tag a host payload: ``kind == "FETCH"`` marks a fetch result."""
    if isinstance(payload, Mapping) and payload.get("kind") == FETCH_KIND:
        return StoredValue.fetch(payload)
    return StoredValue.route(payload)


def normalize_tags(tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Drop duplicates and empty tags, keeping first-seen order."""
    if not tags:
        return ()
    if isinstance(tags, str):
        tags = [tags]
    seen = []
    for tag in tags:
        if tag and tag not in seen:
            seen.append(str(tag))
    return tuple(seen)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheEntry:
    """A stored cache entry."""
    key: str
    value: Any
    last_modified_at: int
    partition: Partition
    tags: Tuple[str, ...] = field(default_factory=tuple)
    revalidate: Revalidate = None

    def to_document(self) -> Dict[str, Any]:
        """Document persisted for the entry (``value`` still un-encoded)."""
        return {
            "key": self.key,
            "value": self.value,
            "lastModified": self.last_modified_at,
            "tags": list(self.tags),
            "revalidate": self.revalidate,
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any], partition: Partition) -> "CacheEntry":
        tags = document.get("tags") or []
        if not isinstance(tags, list):
            raise ValueError("tags must be a list")
        return cls(
            key=document.get("key", ""),
            value=document["value"],
            last_modified_at=int(document.get("lastModified") or 0),
            partition=partition,
            tags=tuple(str(tag) for tag in tags),
            revalidate=document.get("revalidate"),
        )

    def summary(self) -> Dict[str, Any]:
        """Entry description used by the stats endpoint."""
        return {
            "key": self.key,
            "tags": list(self.tags),
            "lastModified": self.last_modified_at,
            "type": self.partition.value,
        }


@dataclass(frozen=True)
class BuildMeta:
    """Identity of the build that last wrote the route partition."""
    build_id: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {"buildId": self.build_id, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildMeta":
        return cls(build_id=str(data["buildId"]), timestamp=int(data.get("timestamp") or 0))
