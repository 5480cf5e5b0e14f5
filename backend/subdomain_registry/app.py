"""
FastAPI application factory for the subdomain registry.

create_app wires settings, the record store, services and routers. Tests
pass their own settings and store; production calls it with no arguments
from main.py.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subdomain_registry.api.routes import admin, health, registry, webhooks
from subdomain_registry.auth.clerk_verifier import ClerkJWTVerifier
from subdomain_registry.config.settings import RegistrySettings, get_settings
from subdomain_registry.errors import RegistryError, StoreFailureError
from subdomain_registry.middleware.legacy_migration import LegacyMigrationMiddleware
from subdomain_registry.services.billing_webhook_handler import BillingWebhookHandler
from subdomain_registry.services.legacy_migration import LegacyBlobMigrator
from subdomain_registry.services.metadata_sync import AccessMetadataSync
from subdomain_registry.services.quota_policy import QuotaPolicy
from subdomain_registry.services.registry_service import SubdomainRegistryService
from subdomain_registry.storage import RecordStore, RegistryRepository, build_record_store

logger = logging.getLogger(__name__)


def build_token_verifier(settings: RegistrySettings) -> Optional[ClerkJWTVerifier]:
    if not settings.auth_configured:
        logger.warning(
            "Clerk authentication not configured. Authenticated endpoints will return 401. "
            "Set CLERK_PEM_PUBLIC_KEY or CLERK_ISSUER_URL to enable authentication."
        )
        return None
    return ClerkJWTVerifier(
        pem_public_key=settings.clerk_pem_public_key,
        issuer=settings.clerk_issuer_url,
        permitted_origins=settings.permitted_origins,
    )


def create_app(
    settings: Optional[RegistrySettings] = None,
    store: Optional[RecordStore] = None,
    metadata_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the registry application.

    Args:
        settings: Registry settings (default: from environment)
        store: Record store (default: built from settings.store_url)
        metadata_transport: httpx transport for Clerk metadata pushes (tests)
    """
    if settings is None:
        settings = get_settings()
    if store is None:
        store = build_record_store(settings.store_url)

    repository = RegistryRepository(store, fallback_reserved=settings.reserved_subdomains)
    quota_policy = QuotaPolicy(settings, repository)
    registry_service = SubdomainRegistryService(repository, quota_policy)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting subdomain registry",
            extra={
                "store": type(store).__name__,
                "billing_mode": settings.billing_mode,
                "auth_configured": settings.auth_configured,
            },
        )
        yield
        logger.info("Shutting down subdomain registry")
        store.close()

    app = FastAPI(
        title="Subdomain Registry",
        description="Multi-tenant subdomain ownership, sharing and access control",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.record_store = store
    app.state.registry_service = registry_service
    app.state.token_verifier = build_token_verifier(settings)
    app.state.webhook_handler = BillingWebhookHandler(registry_service, quota_policy)
    app.state.metadata_sync = AccessMetadataSync(
        registry_service,
        settings.clerk_secret_key,
        api_url=settings.clerk_api_url,
        transport=metadata_transport,
    )

    # Migration runs inside CORS so error responses still carry CORS headers
    app.add_middleware(LegacyMigrationMiddleware, migrator=LegacyBlobMigrator(repository))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(health.router)
    app.include_router(registry.router)
    app.include_router(webhooks.router)
    app.include_router(admin.router)

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError):
        if isinstance(exc, StoreFailureError):
            logger.error(
                "Record store failure",
                extra={
                    "path": request.url.path,
                    "error": exc.message,
                    "cause": type(exc.cause).__name__ if exc.cause else None,
                },
            )
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid request",
                "detail": [
                    {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions with proper logging."""
        logger.error(
            "Unhandled exception",
            extra={
                "error": str(exc),
                "error_type": type(exc).__name__,
                "path": request.url.path,
            },
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": "An unexpected error occurred",
            },
        )

    return app
