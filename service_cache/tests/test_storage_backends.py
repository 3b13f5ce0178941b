"""
Unit tests for the storage backends.
"""

import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from minio.error import S3Error

from service_cache.app.storage import (
    FileSystemBackend,
    MemoryBackend,
    ObjectStorageBackend,
    blob_name,
    create_backend,
    sanitize_key,
)
from shared.config import CacheConfig
from shared.errors import ConfigurationError, StorageError


def _s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message=f"{code} message",
        resource="resource",
        request_id="request-id",
        host_id="host-id",
        response=MagicMock(),
    )


class TestBlobNaming:
    """Test cases for blob naming."""

    def test_sanitize_key(self):
        """Test unsafe characters are replaced."""
        assert sanitize_key("/blog/post-1?x=1") == "_blog_post-1_x_1"

    def test_blob_name(self):
        """Test blob names carry namespace, partition prefix and suffix."""
        assert blob_name("cache", "route-cache/", "/about") == "cache/route-cache/_about.json"

    def test_sanitization_is_lossy(self):
        """Test distinct keys can share a blob name."""
        assert sanitize_key("/blog/a") == sanitize_key("_blog_a")


class TestFileSystemBackend:
    """Test cases for FileSystemBackend."""

    @pytest.fixture
    def backend(self, tmp_path):
        """Create FileSystemBackend instance."""
        return FileSystemBackend(tmp_path / "store")

    @pytest.mark.asyncio
    async def test_put_get(self, backend):
        """Test writing and reading a blob creates directories on demand."""
        await backend.put("cache/route-cache/a.json", b"{}")

        assert await backend.get("cache/route-cache/a.json") == b"{}"
        assert (backend.root / "cache" / "route-cache" / "a.json").is_file()

    @pytest.mark.asyncio
    async def test_get_missing(self, backend):
        """Test missing blobs read as None."""
        assert await backend.get("cache/route-cache/missing.json") is None

    @pytest.mark.asyncio
    async def test_put_replaces_without_leftovers(self, backend):
        """Test overwrites leave no temporary files behind."""
        await backend.put("cache/fetch-cache/a.json", b"one")
        await backend.put("cache/fetch-cache/a.json", b"two")

        assert await backend.get("cache/fetch-cache/a.json") == b"two"
        assert sorted(p.name for p in (backend.root / "cache" / "fetch-cache").iterdir()) == ["a.json"]

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        """Test delete reports whether the blob existed."""
        await backend.put("cache/route-cache/a.json", b"{}")

        assert await backend.delete("cache/route-cache/a.json") is True
        assert await backend.delete("cache/route-cache/a.json") is False
        assert await backend.get("cache/route-cache/a.json") is None

    @pytest.mark.asyncio
    async def test_list_by_prefix(self, backend):
        """Test listing returns only blobs under the prefix."""
        await backend.put("cache/route-cache/a.json", b"{}")
        await backend.put("cache/route-cache/b.json", b"{}")
        await backend.put("cache/fetch-cache/c.json", b"{}")
        await backend.put("build-meta.json", b"{}")

        assert await backend.list("cache/route-cache/") == [
            "cache/route-cache/a.json",
            "cache/route-cache/b.json",
        ]
        assert await backend.list("cache/tags/") == []
        assert "build-meta.json" in await backend.list("")

    @pytest.mark.asyncio
    async def test_list_skips_temporary_files(self, backend):
        """Test in-flight temporary files are not listed."""
        await backend.put("cache/route-cache/a.json", b"{}")
        (backend.root / "cache" / "route-cache" / "a.json.abc.tmp").write_bytes(b"")

        assert await backend.list("cache/route-cache/") == ["cache/route-cache/a.json"]

    @pytest.mark.asyncio
    async def test_get_directory_raises_storage_error(self, backend):
        """Test unreadable blobs raise StorageError."""
        (backend.root / "cache" / "route-cache" / "dir.json").mkdir(parents=True)

        with pytest.raises(StorageError):
            await backend.get("cache/route-cache/dir.json")

    @pytest.mark.asyncio
    async def test_health_check(self, backend):
        """Test health check on an existing root."""
        assert await backend.health_check() is True


class TestMemoryBackend:
    """Test cases for MemoryBackend."""

    @pytest.mark.asyncio
    async def test_instances_are_isolated(self):
        """Test two instances never share blobs."""
        first, second = MemoryBackend(), MemoryBackend()
        await first.put("a", b"1")

        assert await first.get("a") == b"1"
        assert await second.get("a") is None
        assert len(first) == 1
        assert len(second) == 0

    @pytest.mark.asyncio
    async def test_delete_and_list(self):
        """Test delete and list semantics."""
        backend = MemoryBackend()
        await backend.put("p/a", b"1")
        await backend.put("p/b", b"2")
        await backend.put("q/c", b"3")

        assert await backend.list("p/") == ["p/a", "p/b"]
        assert await backend.delete("p/a") is True
        assert await backend.delete("p/a") is False
        assert await backend.health_check() is True


class TestObjectStorageBackend:
    """Test cases for ObjectStorageBackend with a mocked MinIO client."""

    @pytest.fixture
    def client(self):
        """Create a mocked MinIO client."""
        client = MagicMock()
        client.bucket_exists.return_value = True
        return client

    @pytest.fixture
    def backend(self, client):
        """Create ObjectStorageBackend instance."""
        return ObjectStorageBackend("render-cache", client=client)

    def test_missing_bucket_is_configuration_error(self):
        """Test the bucket is required."""
        with pytest.raises(ConfigurationError):
            ObjectStorageBackend(None, client=MagicMock())

    @pytest.mark.asyncio
    async def test_creates_bucket_on_first_use(self, client, backend):
        """Test a missing bucket is created lazily, once."""
        client.bucket_exists.return_value = False
        client.list_objects.return_value = []

        await backend.list("cache/")
        await backend.list("cache/")

        client.make_bucket.assert_called_once_with(bucket_name="render-cache")

    @pytest.mark.asyncio
    async def test_get(self, client, backend):
        """Test reading an object releases the connection."""
        response = MagicMock()
        response.read.return_value = b"{}"
        client.get_object.return_value = response

        assert await backend.get("cache/route-cache/a.json") == b"{}"
        client.get_object.assert_called_once_with(bucket_name="render-cache", object_name="cache/route-cache/a.json")
        response.release_conn.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_missing(self, client, backend):
        """Test a missing object reads as None."""
        client.get_object.side_effect = _s3_error("NoSuchKey")

        assert await backend.get("cache/route-cache/a.json") is None

    @pytest.mark.asyncio
    async def test_get_failure_raises_storage_error(self, client, backend):
        """Test other S3 errors raise StorageError."""
        client.get_object.side_effect = _s3_error("AccessDenied")

        with pytest.raises(StorageError):
            await backend.get("cache/route-cache/a.json")

    @pytest.mark.asyncio
    async def test_put(self, client, backend):
        """Test writing an object."""
        await backend.put("cache/route-cache/a.json", b"{}")

        kwargs = client.put_object.call_args.kwargs
        assert kwargs["bucket_name"] == "render-cache"
        assert kwargs["object_name"] == "cache/route-cache/a.json"
        assert kwargs["length"] == 2
        assert kwargs["data"].read() == b"{}"

    @pytest.mark.asyncio
    async def test_delete_missing(self, client, backend):
        """Test deleting a missing object reports False."""
        client.stat_object.side_effect = _s3_error("NoSuchKey")

        assert await backend.delete("cache/route-cache/a.json") is False
        client.remove_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_existing(self, client, backend):
        """Test deleting an existing object."""
        assert await backend.delete("cache/route-cache/a.json") is True
        client.remove_object.assert_called_once_with(bucket_name="render-cache", object_name="cache/route-cache/a.json")

    @pytest.mark.asyncio
    async def test_list(self, client, backend):
        """Test listing object names."""
        client.list_objects.return_value = [
            MagicMock(object_name="cache/route-cache/b.json"),
            MagicMock(object_name="cache/route-cache/a.json"),
        ]

        assert await backend.list("cache/route-cache/") == [
            "cache/route-cache/a.json",
            "cache/route-cache/b.json",
        ]


class TestCreateBackend:
    """Test cases for backend selection."""

    def test_filesystem(self, tmp_path):
        """Test the filesystem backend is rooted at the cache dir."""
        backend = create_backend(CacheConfig(backend="filesystem", dir=str(tmp_path)))
        assert isinstance(backend, FileSystemBackend)
        assert backend.root == tmp_path

    def test_memory(self):
        """Test the memory backend."""
        assert isinstance(create_backend(CacheConfig(backend="memory")), MemoryBackend)

    def test_object_store_without_bucket(self):
        """Test the object store backend requires a bucket."""
        with pytest.raises(ConfigurationError):
            create_backend(CacheConfig(backend="object_store"))

    def test_unknown_backend(self):
        """Test unknown backends are rejected."""
        with pytest.raises(ConfigurationError):
            create_backend(CacheConfig(backend="redis"))
