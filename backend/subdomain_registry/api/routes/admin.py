"""
Admin API routes for quota management.

SECURITY: Every route requires a bearer token whose subject is listed in
ADMIN_USER_IDS. An empty list locks the routes for everyone.
"""

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from starlette.concurrency import run_in_threadpool

from subdomain_registry.api.dependencies import (
    get_metadata_sync,
    get_quota_policy,
    get_registry_service,
)
from subdomain_registry.api.schemas.registry import QuotaUpdateRequest, QuotaUpdateResponse
from subdomain_registry.auth.dependencies import require_user
from subdomain_registry.auth.jwt import RegistryTokenClaims
from subdomain_registry.errors import ForbiddenError
from subdomain_registry.services.metadata_sync import AccessMetadataSync
from subdomain_registry.services.quota_policy import QuotaPolicy
from subdomain_registry.services.registry_service import SubdomainRegistryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin(
    user: RegistryTokenClaims = Depends(require_user),
    quota_policy: QuotaPolicy = Depends(get_quota_policy),
) -> RegistryTokenClaims:
    if not quota_policy.is_admin(user.user_id):
        logger.warning("Admin route denied", extra={"user_id": user.user_id})
        raise ForbiddenError("Admin access required", reason="not_admin")
    return user


@router.post("/quotas", response_model=QuotaUpdateResponse)
async def update_quota(
    body: QuotaUpdateRequest,
    background_tasks: BackgroundTasks,
    admin: RegistryTokenClaims = Depends(require_admin),
    service: SubdomainRegistryService = Depends(get_registry_service),
    metadata_sync: AccessMetadataSync = Depends(get_metadata_sync),
):
    """
    Set or clear a user's quota override.

    With ``releaseExcess`` the user's newest claims above the new quota are
    released immediately; otherwise they are kept and only new claims are
    blocked.
    """
    await run_in_threadpool(service.set_quota, body.user_id, body.quota)

    released: List[str] = []
    if body.release_excess and body.quota is not None:
        result = await run_in_threadpool(service.release_excess_claims, body.user_id, body.quota)
        released = result.released

    logger.info(
        "Admin updated quota",
        extra={
            "admin_id": admin.user_id,
            "user_id": body.user_id,
            "quota": body.quota,
            "released": len(released),
        },
    )

    if released:
        background_tasks.add_task(metadata_sync.push_user, body.user_id)

    return QuotaUpdateResponse(user_id=body.user_id, quota=body.quota, released=released)
