"""
Adapters package for the Cache Service.

Contains HTTP client wrappers for external collaborators. Currently the
only one is the edge cache purge endpoint.
"""

from .edge_invalidation_client import (
    EdgeInvalidationClient,
    EdgeInvalidationNotifier,
    PurgeResult,
)

__all__ = [
    "EdgeInvalidationClient",
    "EdgeInvalidationNotifier",
    "PurgeResult",
]
