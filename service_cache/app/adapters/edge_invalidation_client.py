"""
Edge cache invalidation client.

Purges an external edge cache (CDN or caching proxy) through a plain HTTP
DELETE endpoint:

    DELETE <base>                      purge everything
    DELETE <base>/keys?key=..&tag=..   purge cache keys
    DELETE <base>/paths?path=..        purge request paths

Purges are best effort. The client never raises, and the notifier runs each
purge as a background task the triggering cache operation never awaits.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set, Tuple

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

DEFAULT_PURGE_TIMEOUT = 10.0


@dataclass
class PurgeResult:
    """Outcome of a single purge call."""
    success: bool
    duration_ms: float
    status_code: Optional[int] = None
    error: Optional[str] = None


class EdgeInvalidationClient:
    """HTTP client for the edge purge endpoint."""

    def __init__(self, endpoint: str, timeout: float = DEFAULT_PURGE_TIMEOUT):
        if "://" not in endpoint:
            endpoint = f"http://{endpoint}"
        self.base_url = endpoint.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("cache.edge_client")

    async def purge_all(self) -> PurgeResult:
        """Purge the whole edge cache."""
        return await self._delete(self.base_url)

    async def purge_keys(self, keys: Iterable[str], tags: Iterable[str] = ()) -> PurgeResult:
        """Purge specific cache keys, passing the originating tags along."""
        params: List[Tuple[str, str]] = [("key", key) for key in keys]
        params.extend(("tag", tag) for tag in tags)
        return await self._delete(f"{self.base_url}/keys", params)

    async def purge_paths(self, paths: Iterable[str]) -> PurgeResult:
        """Purge specific request paths."""
        params = [("path", path) for path in paths]
        return await self._delete(f"{self.base_url}/paths", params)

    async def _delete(self, url: str, params: Optional[List[Tuple[str, str]]] = None) -> PurgeResult:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.delete(
                    url,
                    params=params,
                    headers={"Content-Type": "application/json"},
                )

            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            if response.is_success:
                self.logger.info("Edge cache purged", url=url, duration_ms=duration_ms)
                return PurgeResult(success=True, status_code=response.status_code, duration_ms=duration_ms)

            raise ExternalServiceError(
                service="edge_cache",
                message=f"HTTP {response.status_code}: {response.text}",
                details={"status_code": response.status_code},
            )

        except ExternalServiceError as exc:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            self.logger.error("Edge cache purge rejected", url=url, error=exc.message)
            return PurgeResult(
                success=False,
                status_code=exc.details.get("status_code"),
                error=exc.message,
                duration_ms=duration_ms,
            )
        except Exception as exc:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            self.logger.error("Edge cache purge failed", url=url, error=str(exc) or type(exc).__name__)
            return PurgeResult(success=False, error=str(exc) or type(exc).__name__, duration_ms=duration_ms)


class EdgeInvalidationNotifier:
    """Schedules edge purges as background tasks.

    Without a client every call is a no-op, so the cache store can always
    hold a notifier regardless of configuration.
    """

    def __init__(
        self,
        client: Optional[EdgeInvalidationClient] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.client = client
        self.metrics = metrics
        self.logger = get_logger("cache.edge_notifier")
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def notify_all(self) -> Optional[asyncio.Task]:
        if not self.client:
            return None
        return self._spawn("purge_all", self.client.purge_all())

    def notify_keys(self, keys: Iterable[str], tags: Iterable[str] = ()) -> Optional[asyncio.Task]:
        keys = list(keys)
        if not self.client or not keys:
            return None
        return self._spawn("purge_keys", self.client.purge_keys(keys, list(tags)), keys=len(keys))

    def notify_paths(self, paths: Iterable[str]) -> Optional[asyncio.Task]:
        paths = list(paths)
        if not self.client or not paths:
            return None
        return self._spawn("purge_paths", self.client.purge_paths(paths), paths=len(paths))

    def _spawn(self, operation: str, coro, **context: Any) -> Optional[asyncio.Task]:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            self.logger.warning("No running event loop, edge purge skipped", operation=operation)
            return None

        self._tasks.add(task)
        task.add_done_callback(lambda done: self._on_done(operation, done, context))
        return task

    def _on_done(self, operation: str, task: asyncio.Task, context: Dict[str, Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.warning("Edge purge cancelled", operation=operation, **context)
            return

        exc = task.exception()
        if exc is not None:
            self.logger.error("Edge purge crashed", operation=operation, error=str(exc), **context)
            self._record(operation, "error", None)
            return

        result: PurgeResult = task.result()
        self.logger.info(
            "Edge purge finished",
            operation=operation,
            success=result.success,
            status_code=result.status_code,
            duration_ms=result.duration_ms,
            **context,
        )
        self._record(operation, "success" if result.success else "failure", result.duration_ms)

    def _record(self, operation: str, result: str, duration_ms: Optional[float]) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("edge_purge_total", operation=operation, result=result)
        if duration_ms is not None:
            self.metrics.observe_histogram(
                "edge_purge_duration_seconds", duration_ms / 1000, operation=operation
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding purges (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
