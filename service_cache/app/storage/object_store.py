"""
Remote object storage backend (S3-compatible, via the MinIO client).
"""

import asyncio
import functools
from io import BytesIO
from typing import Any, Callable, List, Optional

from minio import Minio
from minio.error import S3Error

from shared.errors import ConfigurationError, StorageError
from shared.logging import get_logger
from .base import StorageBackend

MISSING_OBJECT_CODES = ("NoSuchKey", "NoSuchObject")


class ObjectStorageBackend(StorageBackend):
    """One object per blob in a single bucket.

    The MinIO SDK is blocking, so every call runs in the default executor.
    The bucket is shared by every replica pointed at it; the backend adds no
    coordination beyond the per-object atomicity of the store itself.
    """

    name = "object_store"

    def __init__(
        self,
        bucket: Optional[str],
        endpoint: str = "localhost:9000",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        secure: bool = False,
        client: Optional[Minio] = None,
    ):
        if not bucket:
            raise ConfigurationError(
                "CACHE_BUCKET is required for the object storage backend",
                {"backend": self.name},
            )

        self.bucket = bucket
        self.endpoint = endpoint
        self.logger = get_logger("cache.storage.object_store")
        self._client = client or Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        self._bucket_ready = False

    async def _run(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    async def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            if not await self._run(self._client.bucket_exists, bucket_name=self.bucket):
                await self._run(self._client.make_bucket, bucket_name=self.bucket)
                self.logger.info("Created cache bucket", bucket=self.bucket)
        except S3Error as exc:
            raise StorageError("Failed to prepare bucket", {"bucket": self.bucket, "error": str(exc)})
        self._bucket_ready = True

    def _read_object(self, name: str) -> bytes:
        response = self._client.get_object(bucket_name=self.bucket, object_name=name)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def get(self, name: str) -> Optional[bytes]:
        await self._ensure_bucket()
        try:
            return await self._run(self._read_object, name)
        except S3Error as exc:
            if exc.code in MISSING_OBJECT_CODES:
                return None
            raise StorageError(f"Failed to read {name}", {"error": str(exc)})

    async def put(self, name: str, data: bytes) -> None:
        await self._ensure_bucket()
        try:
            await self._run(
                self._client.put_object,
                bucket_name=self.bucket,
                object_name=name,
                data=BytesIO(data),
                length=len(data),
                content_type="application/json",
            )
        except S3Error as exc:
            raise StorageError(f"Failed to write {name}", {"error": str(exc)})

    async def delete(self, name: str) -> bool:
        await self._ensure_bucket()
        try:
            # remove_object succeeds for missing keys, so check existence first
            await self._run(self._client.stat_object, bucket_name=self.bucket, object_name=name)
        except S3Error as exc:
            if exc.code in MISSING_OBJECT_CODES:
                return False
            raise StorageError(f"Failed to delete {name}", {"error": str(exc)})

        try:
            await self._run(self._client.remove_object, bucket_name=self.bucket, object_name=name)
            return True
        except S3Error as exc:
            raise StorageError(f"Failed to delete {name}", {"error": str(exc)})

    async def list(self, prefix: str) -> List[str]:
        await self._ensure_bucket()

        def _collect() -> List[str]:
            objects = self._client.list_objects(bucket_name=self.bucket, prefix=prefix, recursive=True)
            return sorted(obj.object_name for obj in objects)

        try:
            return await self._run(_collect)
        except S3Error as exc:
            raise StorageError(f"Failed to list {prefix!r}", {"error": str(exc)})

    async def health_check(self) -> bool:
        try:
            return await self._run(self._client.bucket_exists, bucket_name=self.bucket)
        except Exception as exc:
            self.logger.warning("Object storage health check failed", error=str(exc))
            return False
