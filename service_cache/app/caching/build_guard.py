"""
Build-generation guard.

Route outputs are tied to the build that rendered them; fetch results are
not. When the process starts under a different build than the one recorded
in ``build-meta.json``, every ROUTE entry is evicted and FETCH is kept.

The check runs once per process. Several workers of the same deployment
may race on it; they resolve to the same build identity, so at worst each
of them clears an already-cleared partition.
"""

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from shared.config import CacheConfig
from shared.logging import get_logger
from ..storage.base import StorageBackend
from .models import BuildMeta, Partition, now_ms
from .store import delete_blobs

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.edge_invalidation_client import EdgeInvalidationNotifier

BUILD_META_BLOB = "build-meta.json"
BUILD_ID_FILE = "BUILD_ID"

SKIPPED = "skipped"
FIRST_RUN = "first_run"
UNCHANGED = "unchanged"
INVALIDATED = "invalidated"

logger = get_logger("cache.build_guard")

_build_check_done = False


def resolve_build_id(config: CacheConfig) -> Optional[str]:
    """Work out the identity of the running build.

    Order: ``CACHE_BUILD_ID``, the ``BUILD_ID`` file in ``CACHE_BUILD_DIR``,
    then the build directory's mtime truncated to the minute so every worker
    started from one build agrees.
    """
    if config.build_id:
        return config.build_id

    if not config.build_dir:
        return None

    build_dir = Path(config.build_dir)
    id_file = build_dir / BUILD_ID_FILE
    try:
        build_id = id_file.read_text(encoding="utf-8").strip()
        if build_id:
            return build_id
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not read build id file", path=str(id_file), error=str(e))

    try:
        mtime = os.stat(build_dir).st_mtime
    except OSError as e:
        logger.warning("Build directory unavailable", path=str(build_dir), error=str(e))
        return None

    minute_ms = int(mtime // 60) * 60 * 1000
    return f"build-{minute_ms}"


class BuildGenerationGuard:
    """Evicts the ROUTE partition when the build identity changes."""

    def __init__(
        self,
        backend: StorageBackend,
        namespace: str = "cache",
        build_id: Optional[str] = None,
        notifier: Optional["EdgeInvalidationNotifier"] = None,
        is_build_phase: bool = False,
    ):
        self.backend = backend
        self.namespace = namespace
        self.build_id = build_id
        self.notifier = notifier
        self.is_build_phase = is_build_phase

    @classmethod
    def from_config(
        cls,
        backend: StorageBackend,
        config: CacheConfig,
        notifier: Optional["EdgeInvalidationNotifier"] = None,
    ) -> "BuildGenerationGuard":
        return cls(
            backend,
            namespace=config.namespace,
            build_id=resolve_build_id(config),
            notifier=notifier,
            is_build_phase=config.build_phase,
        )

    async def read_meta(self) -> Optional[BuildMeta]:
        """Return the recorded build, or ``None`` when absent or unreadable."""
        try:
            data = await self.backend.get(BUILD_META_BLOB)
        except Exception as e:
            logger.warning("Build metadata unreadable", error=str(e))
            return None
        if data is None:
            return None

        try:
            return BuildMeta.from_dict(json.loads(data.decode("utf-8")))
        except (KeyError, TypeError, ValueError, RecursionError) as e:
            logger.warning("Build metadata corrupt, treating as first run", error=str(e))
            return None

    async def write_meta(self, build_id: str) -> None:
        meta = BuildMeta(build_id=build_id, timestamp=now_ms())
        await self.backend.put(BUILD_META_BLOB, json.dumps(meta.to_dict(), indent=2).encode("utf-8"))

    async def run(self, force: bool = False) -> str:
        """Compare the running build with the recorded one and act on it."""
        global _build_check_done

        if self.is_build_phase:
            logger.debug("Build phase, skipping build check")
            return SKIPPED
        if _build_check_done and not force:
            return SKIPPED
        _build_check_done = True

        if not self.build_id:
            logger.warning("No build identity available, skipping build check")
            return SKIPPED

        try:
            meta = await self.read_meta()

            if meta is None:
                await self.write_meta(self.build_id)
                logger.info("Recorded first build", build_id=self.build_id)
                return FIRST_RUN

            if meta.build_id == self.build_id:
                logger.debug("Build unchanged", build_id=self.build_id)
                return UNCHANGED

            logger.info(
                "New build detected, invalidating route cache",
                previous_build_id=meta.build_id,
                build_id=self.build_id,
            )
            blobs = await self.backend.list(f"{self.namespace}/{Partition.ROUTE.prefix}")
            deleted = await delete_blobs(self.backend, blobs, logger)
            await self.write_meta(self.build_id)

        except Exception as e:
            logger.error("Build check failed", build_id=self.build_id, error=str(e))
            return SKIPPED

        logger.info("Route cache invalidated", deleted=len(deleted), listed=len(blobs))
        if self.notifier:
            self.notifier.notify_all()
        return INVALIDATED


def reset_build_check() -> None:
    """Allow the next ``run`` in this process to check again."""
    global _build_check_done
    _build_check_done = False
