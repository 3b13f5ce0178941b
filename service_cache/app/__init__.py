"""
Cache Service package for the render cache store.

The service persists rendered pages and fetch results for a rendering host,
addressable by key and by tag, and evicts route outputs when a new build
is deployed.

Structure:
- app.main: FastAPI app exposing stats, clear and revalidation routes.
- app.caching: Partitioned store, tag index, build guard and host handler.
- app.storage: Filesystem, object storage and in-memory blob backends.
- app.serialization: JSON codec for byte buffers and map-like values.
- app.adapters: HTTP client for edge cache purges.
"""
