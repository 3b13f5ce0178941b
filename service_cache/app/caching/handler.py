"""
Host-facing cache handler.

The rendering host talks to the cache through four calls: ``get``, ``set``,
``revalidate_tag`` and ``reset_request_cache``. This module turns the host's
loose context dictionaries into explicit partitions and tags and delegates
to :class:`PartitionedCacheStore`.
"""

from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, Optional, Union

from shared.config import CacheConfig
from shared.logging import get_logger
from ..adapters.edge_invalidation_client import EdgeInvalidationClient, EdgeInvalidationNotifier
from ..storage import StorageBackend, create_backend
from .build_guard import BuildGenerationGuard
from .models import CacheEntry, Partition, classify_payload
from .static_routes import load_static_routes
from .store import PartitionedCacheStore
from .tag_index import TagIndex

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

FETCH_HINT_KEYS = ("is_fetch_hint", "fetch_cache", "fetch_url", "fetch_idx")
REVALIDATE_KEYS = ("revalidate_seconds", "revalidateSeconds", "revalidate")


def is_fetch_context(ctx: Optional[Dict[str, Any]]) -> bool:
    """A lookup targets FETCH when the host flags it as a fetch."""
    if not ctx:
        return False
    if ctx.get("is_fetch_hint") is True or ctx.get("fetch_cache") is True:
        return True
    return ctx.get("fetch_url") is not None or ctx.get("fetch_idx") is not None


class CacheHandler:
    """Cache handler used by the rendering host."""

    def __init__(
        self,
        store: PartitionedCacheStore,
        guard: Optional[BuildGenerationGuard] = None,
        static_routes: Iterable[str] = (),
    ):
        self.store = store
        self.guard = guard
        self.static_routes: FrozenSet[str] = frozenset(static_routes)
        self.logger = get_logger("cache.handler")

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        *,
        backend: Optional[StorageBackend] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> "CacheHandler":
        """Wire backend, index, notifier, guard and store from settings.

        Raises ``ConfigurationError`` for an unusable backend selection.
        """
        backend = backend or create_backend(config)

        client = None
        if config.edge_purge_endpoint:
            client = EdgeInvalidationClient(config.edge_purge_endpoint, timeout=config.edge_purge_timeout)
        notifier = EdgeInvalidationNotifier(client, metrics=metrics)

        store = PartitionedCacheStore(
            backend,
            config.namespace,
            TagIndex(backend, config.namespace),
            notifier,
            metrics=metrics,
        )
        guard = BuildGenerationGuard.from_config(backend, config, notifier)
        return cls(store, guard, load_static_routes(config.prerender_manifest))

    @property
    def notifier(self) -> Optional[EdgeInvalidationNotifier]:
        return self.store.notifier

    async def start(self) -> None:
        """Run the build check and make sure the tag index exists."""
        if self.guard:
            outcome = await self.guard.run()
            self.logger.info("Build check finished", outcome=outcome)
        try:
            await self.store.tag_index.ensure()
        except Exception as e:
            self.logger.error("Tag index initialisation failed", error=str(e))

    async def get(self, key: str, ctx: Optional[Dict[str, Any]] = None) -> Optional[CacheEntry]:
        partition = Partition.FETCH if is_fetch_context(ctx) else Partition.ROUTE
        return await self.store.get(key, partition)

    async def set(self, key: str, value: Any, ctx: Optional[Dict[str, Any]] = None) -> bool:
        """Store a host payload.

        ``ctx["tags"]`` lists the entry's tags. The revalidate interval is read
        from ``ctx["revalidate_seconds"]``, ``ctx["revalidateSeconds"]`` or
        ``ctx["revalidate"]``, first present wins.
        """
        ctx = ctx or {}
        revalidate = None
        for name in REVALIDATE_KEYS:
            if name in ctx:
                revalidate = ctx[name]
                break
        return await self.store.set(
            key,
            classify_payload(value),
            tags=ctx.get("tags") or (),
            revalidate=revalidate,
        )

    async def revalidate_tag(self, tag_or_tags: Union[str, Iterable[str]]) -> int:
        return await self.store.revalidate_tag(tag_or_tags)

    def reset_request_cache(self) -> None:
        self.store.reset_request_cache()

    async def get_stats(self) -> Dict[str, Any]:
        return await self.store.get_stats()

    async def clear(self) -> int:
        """Clear everything except the static routes."""
        return await self.store.clear(self.static_routes)

    async def close(self) -> None:
        if self.notifier:
            await self.notifier.drain()
        await self.store.backend.close()
