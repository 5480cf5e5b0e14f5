"""
Health check endpoint.

Liveness only: never touches the record store, so it answers while the
store is unreachable.
"""

from fastapi import APIRouter, Depends, Request

from subdomain_registry.api.dependencies import get_registry_settings
from subdomain_registry.api.schemas.registry import HealthResponse
from subdomain_registry.config.settings import RegistrySettings

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    settings: RegistrySettings = Depends(get_registry_settings),
):
    return HealthResponse(
        status="ok",
        store=type(request.app.state.record_store).__name__,
        auth_configured=settings.auth_configured,
        billing_mode=settings.billing_mode,
        plans=settings.plan_quotas,
    )
