"""
Storage backend contract and blob naming.
"""

import re
from abc import ABC, abstractmethod
from typing import List, Optional

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9-]")
BLOB_SUFFIX = ".json"


def sanitize_key(key: str) -> str:
    """Replace characters outside ``[a-zA-Z0-9-]`` with ``_``.

    Lossy: ``/blog/a`` and ``_blog_a`` map to the same name. Entry documents
    carry the original key so readers can tell the two apart.
    """
    return _UNSAFE_CHARS.sub("_", key)


def blob_name(namespace: str, prefix: str, key: str) -> str:
    """Build the blob name for ``key`` under a partition prefix."""
    return f"{namespace}/{prefix}{sanitize_key(key)}{BLOB_SUFFIX}"


class StorageBackend(ABC):
    """Uniform async get/put/delete/list over named byte blobs.

    Each operation is atomic for a single blob. Nothing is atomic across
    blobs, so callers must tolerate partially applied bulk operations.
    """

    name = "abstract"

    @abstractmethod
    async def get(self, name: str) -> Optional[bytes]:
        """Return the blob contents, or ``None`` when it does not exist."""

    @abstractmethod
    async def put(self, name: str, data: bytes) -> None:
        """Create or replace a blob. Raises ``StorageError`` on failure."""

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete a blob. Returns ``False`` when it did not exist."""

    @abstractmethod
    async def list(self, prefix: str) -> List[str]:
        """Return the names of all blobs starting with ``prefix``."""

    async def health_check(self) -> bool:
        """Check that the backend is reachable."""
        try:
            await self.list("")
            return True
        except Exception:
            return False

    async def close(self) -> None:
        """Release backend resources."""
        return None
