"""
Cache service: administrative HTTP surface over the render cache store.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import Body, Query

from shared.base_service import BaseService
from shared.config import CacheConfig, get_config
from shared.errors import ValidationError

from .caching.handler import CacheHandler


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CacheService(BaseService):
    """Cache service implementation."""

    def __init__(self, config: Optional[CacheConfig] = None, handler: Optional[CacheHandler] = None):
        super().__init__("cache", config or get_config())

        self.handler = handler or CacheHandler.from_config(self.config, metrics=self.metrics)
        if self.handler.store.metrics is None:
            self.handler.store.metrics = self.metrics

        @self.app.on_event("startup")
        async def _startup():
            await self.handler.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.handler.close()

        self._setup_cache_routes()

    def _setup_cache_routes(self):
        """Set up cache administration routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "cache",
                "message": "Render Cache Store - Cache Service",
                "version": "1.0.0",
                "backend": self.handler.store.backend.name,
                "namespace": self.handler.store.namespace,
            }

        @self.app.get("/cache-stats")
        async def cache_stats():
            """Describe every entry currently stored."""
            stats = await self.handler.get_stats()
            stats["timestamp"] = _utc_now()
            return stats

        @self.app.delete("/cache-stats")
        async def clear_cache():
            """Clear the cache, keeping statically generated routes."""
            cleared = await self.handler.clear()
            self.logger.info("Cache cleared via API", cleared_entries=cleared)
            return {"cleared_entries": cleared, "timestamp": _utc_now()}

        @self.app.get("/revalidate")
        async def revalidate_get(tag: Optional[str] = Query(None)):
            """Invalidate every entry carrying ``tag``."""
            return await self._revalidate(tag)

        @self.app.post("/revalidate")
        async def revalidate_post(
            tag: Optional[str] = Query(None),
            payload: Optional[Dict[str, Any]] = Body(None),
        ):
            """Invalidate by tag given as query parameter or JSON body."""
            if not tag and payload:
                tag = payload.get("tag")
            return await self._revalidate(tag)

    async def _revalidate(self, tag: Union[str, List[str], None]) -> Dict[str, Any]:
        if isinstance(tag, list):
            tags = [str(t) for t in tag if t]
        elif isinstance(tag, str) and tag:
            tags = [tag]
        else:
            tags = []

        if not tags:
            raise ValidationError("Missing tag parameter", {"parameter": "tag"})

        revalidated = await self.handler.revalidate_tag(tags)
        self.logger.info("Tag revalidated via API", tags=tags, revalidated_entries=revalidated)
        return {
            "tag": tags[0] if len(tags) == 1 else tags,
            "revalidated_at": _utc_now(),
            "revalidated_entries": revalidated,
        }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check cache dependencies."""
        healthy = await self.handler.store.backend.health_check()
        return {"storage": "ok" if healthy else "error"}


def create_app():
    """Create FastAPI application."""
    service = CacheService()
    return service.app


if __name__ == "__main__":
    service = CacheService()
    service.run()
