"""
Unit tests for the Cache service HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_cache.app.caching import build_guard
from service_cache.app.caching.handler import CacheHandler
from service_cache.app.main import CacheService
from service_cache.app.storage import MemoryBackend
from shared.config import CacheConfig


@pytest.fixture(autouse=True)
def fresh_process(monkeypatch):
    """Each test starts as if the process had just booted."""
    monkeypatch.setattr(build_guard, "_build_check_done", False)


class TestCacheService:
    """Test cases for CacheService."""

    @pytest.fixture
    def config(self):
        """Create in-memory configuration."""
        return CacheConfig(backend="memory", build_id="build-1")

    @pytest.fixture
    def handler(self, config):
        """Create CacheHandler instance."""
        return CacheHandler.from_config(config, backend=MemoryBackend())

    @pytest.fixture
    def service(self, config, handler):
        """Create CacheService instance."""
        return CacheService(config=config, handler=handler)

    @pytest.fixture
    def client(self, service):
        """Create test client with startup and shutdown hooks."""
        with TestClient(service.app) as client:
            yield client

    def seed(self, client, handler):
        """Store a few entries through the handler."""
        client.portal.call(handler.set, "k1", {"kind": "FETCH", "data": {}}, {"tags": ["api"]})
        client.portal.call(handler.set, "/about", {"kind": "APP_PAGE"}, {"tags": ["pages"]})
        client.portal.call(handler.set, "/blog", {"kind": "APP_PAGE"}, {"tags": ["pages", "blog"]})

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "cache"
        assert data["backend"] == "memory"

    def test_health(self, client):
        """Test health reports the storage dependency."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"storage": "ok"}

    def test_metrics_endpoint(self, client, handler):
        """Test cache metrics are exported."""
        self.seed(client, handler)
        client.portal.call(handler.get, "/about")

        response = client.get("/metrics")
        assert response.status_code == 200
        assert 'cache_hits_total{partition="route"} 1.0' in response.text
        assert "cache_writes_total" in response.text

    def test_startup_records_build(self, client, handler):
        """Test the build check runs at startup."""
        meta = client.portal.call(handler.store.backend.get, "build-meta.json")
        assert meta is not None

    def test_cache_stats_empty(self, client):
        """Test stats on an empty cache."""
        response = client.get("/cache-stats")
        assert response.status_code == 200
        data = response.json()
        assert data["size"] == 0
        assert data["keys"] == []
        assert "timestamp" in data

    def test_cache_stats(self, client, handler):
        """Test stats list entries from both partitions."""
        self.seed(client, handler)

        data = client.get("/cache-stats").json()

        assert data["size"] == 3
        assert sorted(data["keys"]) == ["fetch:k1", "route:/about", "route:/blog"]
        blog = next(e for e in data["entries"] if e["key"] == "/blog")
        assert blog["tags"] == ["pages", "blog"]
        assert blog["type"] == "route"

    def test_clear_cache(self, client, handler):
        """Test DELETE clears everything and a repeat clears nothing."""
        self.seed(client, handler)

        response = client.delete("/cache-stats")
        assert response.status_code == 200
        assert response.json()["cleared_entries"] == 3
        assert client.delete("/cache-stats").json()["cleared_entries"] == 0
        assert client.get("/cache-stats").json()["size"] == 0

    def test_revalidate_get(self, client, handler):
        """Test revalidation by query parameter."""
        self.seed(client, handler)

        response = client.get("/revalidate", params={"tag": "pages"})

        assert response.status_code == 200
        data = response.json()
        assert data["tag"] == "pages"
        assert data["revalidated_entries"] == 2
        assert "revalidated_at" in data
        assert client.get("/cache-stats").json()["keys"] == ["fetch:k1"]

    def test_revalidate_post_body(self, client, handler):
        """Test revalidation by JSON body."""
        self.seed(client, handler)

        response = client.post("/revalidate", json={"tag": "blog"})

        assert response.status_code == 200
        assert response.json()["revalidated_entries"] == 1

    def test_revalidate_post_query(self, client, handler):
        """Test POST also accepts the query parameter."""
        self.seed(client, handler)

        response = client.post("/revalidate?tag=api")

        assert response.status_code == 200
        assert response.json()["revalidated_entries"] == 1

    def test_revalidate_unknown_tag(self, client):
        """Test an unknown tag revalidates nothing."""
        response = client.get("/revalidate", params={"tag": "nothing"})
        assert response.status_code == 200
        assert response.json()["revalidated_entries"] == 0

    def test_revalidate_missing_tag_get(self, client):
        """Test a missing tag is a validation error."""
        response = client.get("/revalidate")
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert "tag" in data["message"].lower()

    def test_revalidate_missing_tag_post(self, client):
        """Test an empty body is a validation error."""
        response = client.post("/revalidate", json={})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_request_id_header(self, client):
        """Test request ids are echoed back."""
        response = client.get("/cache-stats", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"
