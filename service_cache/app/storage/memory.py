"""
In-memory storage backend.
"""

from typing import Dict, List, Optional

from .base import StorageBackend


class MemoryBackend(StorageBackend):
    """Dict-backed blobs owned by this instance.

    Nothing is shared between instances; pass the same backend object to
    every component that should see the same cache.
    """

    name = "memory"

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    async def get(self, name: str) -> Optional[bytes]:
        return self._blobs.get(name)

    async def put(self, name: str, data: bytes) -> None:
        self._blobs[name] = bytes(data)

    async def delete(self, name: str) -> bool:
        return self._blobs.pop(name, None) is not None

    async def list(self, prefix: str) -> List[str]:
        return sorted(name for name in self._blobs if name.startswith(prefix))

    def __len__(self) -> int:
        return len(self._blobs)
