"""
Static route set loading.

Statically generated routes are rendered once at build time and must survive
a full cache clear. The set comes from the build's prerender manifest.
"""

import json
from pathlib import Path
from typing import FrozenSet, Optional, Union

from shared.logging import get_logger

logger = get_logger("cache.static_routes")


def load_static_routes(path: Optional[Union[str, Path]]) -> FrozenSet[str]:
    """Return the keys of statically generated routes.

    Accepts either a prerender manifest
    (``{"routes": {"/about": {"initialRevalidateSeconds": false}}}``) or a
    plain JSON list of keys. A route with ``initialRevalidateSeconds`` set to
    ``false`` never revalidates and counts as static. The root route is also
    stored as ``/index``.
    """
    if not path:
        return frozenset()

    manifest_path = Path(path)
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.info("No prerender manifest, no static routes", path=str(manifest_path))
        return frozenset()
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.warning("Unreadable prerender manifest", path=str(manifest_path), error=str(e))
        return frozenset()

    if isinstance(manifest, list):
        return frozenset(str(route) for route in manifest if route)

    routes = manifest.get("routes") if isinstance(manifest, dict) else None
    if not isinstance(routes, dict):
        logger.warning("Prerender manifest has no routes", path=str(manifest_path))
        return frozenset()

    static = set()
    for route, info in routes.items():
        if isinstance(info, dict) and info.get("initialRevalidateSeconds") is False:
            static.add(route)
            if route == "/":
                static.add("/index")

    logger.info("Loaded static routes", count=len(static))
    return frozenset(static)
