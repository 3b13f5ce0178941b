"""
Local filesystem storage backend: one file per blob.
"""

import asyncio
import os
import uuid
from pathlib import Path
from typing import List, Optional, Union

import aiofiles
import aiofiles.os

from shared.errors import StorageError
from shared.logging import get_logger
from .base import StorageBackend

TMP_SUFFIX = ".tmp"


class FileSystemBackend(StorageBackend):
    """Blobs stored as files below a root directory.

    Writes go to a temporary sibling first and are moved into place with
    ``os.replace`` so readers never observe a partially written file.
    """

    name = "filesystem"

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.logger = get_logger("cache.storage.filesystem")
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.root.joinpath(*name.split("/"))

    async def get(self, name: str) -> Optional[bytes]:
        path = self._path(name)
        try:
            async with aiofiles.open(path, "rb") as handle:
                return await handle.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {name}", {"error": str(exc)})

    async def put(self, name: str, data: bytes) -> None:
        path = self._path(name)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{TMP_SUFFIX}")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as handle:
                await handle.write(data)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as exc:
            try:
                await aiofiles.os.remove(tmp_path)
            except OSError as cleanup_exc:
                self.logger.debug("Temp blob cleanup failed", path=str(tmp_path), error=str(cleanup_exc))
            raise StorageError(f"Failed to write {name}", {"error": str(exc)})

    async def delete(self, name: str) -> bool:
        try:
            await aiofiles.os.remove(self._path(name))
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete {name}", {"error": str(exc)})

    async def list(self, prefix: str) -> List[str]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._walk, prefix)
        except OSError as exc:
            raise StorageError(f"Failed to list {prefix!r}", {"error": str(exc)})

    def _walk(self, prefix: str) -> List[str]:
        directory = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        base = self._path(directory) if directory else self.root
        if not base.is_dir():
            return []

        names = []
        for current, _dirs, files in os.walk(base):
            for filename in files:
                if filename.endswith(TMP_SUFFIX):
                    continue
                relative = Path(current, filename).relative_to(self.root).as_posix()
                if relative.startswith(prefix):
                    names.append(relative)
        return sorted(names)

    async def health_check(self) -> bool:
        return await aiofiles.os.path.isdir(self.root)
