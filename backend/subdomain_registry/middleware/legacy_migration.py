"""
Legacy migration middleware.

Runs LegacyBlobMigrator before routing on every request. Once the legacy
key is gone each run is a single store read.

A store failure during migration fails the request with the opaque 500
body; the next request retries the migration.
"""

import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from subdomain_registry.errors import StoreFailureError
from subdomain_registry.services.legacy_migration import LegacyBlobMigrator

logger = logging.getLogger(__name__)


class LegacyMigrationMiddleware(BaseHTTPMiddleware):
    """Middleware that migrates the legacy registry blob before routing."""

    # Liveness must answer even when the store is down
    SKIP_PATHS = frozenset({
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
    })

    def __init__(self, app, migrator: LegacyBlobMigrator):
        super().__init__(app)
        self.migrator = migrator

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        try:
            await run_in_threadpool(self.migrator.migrate)
        except StoreFailureError as e:
            logger.error(
                "Legacy migration failed",
                extra={"path": request.url.path, "error": e.message},
            )
            return JSONResponse(status_code=e.http_status, content=e.to_dict())

        return await call_next(request)
