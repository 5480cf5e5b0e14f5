"""
Subdomain registry API routes.

Public:
- GET  /registry.json   aggregate snapshot
- GET  /check/{name}    availability
- GET  /resolve/{name}  caller's role (optional bearer)

Authenticated (Clerk bearer token):
- POST /claim           claim a subdomain
- POST /invite          owner invites a collaborator
- POST /join            invitee redeems an invite

Store calls are synchronous and run in the threadpool. Metadata pushes run
as background tasks after the response is sent.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from starlette.concurrency import run_in_threadpool

from subdomain_registry.api.dependencies import get_metadata_sync, get_registry_service
from subdomain_registry.api.schemas.registry import (
    AvailabilityResponse,
    ClaimRequest,
    ClaimResponse,
    InviteRequest,
    InviteResponse,
    JoinRequest,
    JoinResponse,
    ResolveResponse,
)
from subdomain_registry.auth.dependencies import optional_user, require_user
from subdomain_registry.auth.jwt import RegistryTokenClaims
from subdomain_registry.errors import (
    ForbiddenError,
    NotAvailableError,
    NotFoundError,
    QuotaExceededError,
    RegistryValidationError,
    SubscriptionRequiredError,
)
from subdomain_registry.services import registry_logic
from subdomain_registry.services.metadata_sync import AccessMetadataSync
from subdomain_registry.services.registry_service import SubdomainRegistryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["registry"])


@router.get("/registry.json")
async def get_registry_snapshot(
    service: SubdomainRegistryService = Depends(get_registry_service),
) -> Dict[str, Any]:
    """Aggregate registry: claims, reserved names and preallocated names."""
    return await run_in_threadpool(service.read_snapshot)


@router.get(
    "/check/{name}",
    response_model=AvailabilityResponse,
    response_model_exclude_none=True,
)
async def check_subdomain(
    name: str,
    service: SubdomainRegistryService = Depends(get_registry_service),
):
    result = await run_in_threadpool(service.check_availability, name)
    return AvailabilityResponse(
        available=result.available,
        reason=result.reason,
        owner_id=result.owner_id,
    )


@router.get("/resolve/{name}", response_model=ResolveResponse)
async def resolve_subdomain(
    name: str,
    user: Optional[RegistryTokenClaims] = Depends(optional_user),
    service: SubdomainRegistryService = Depends(get_registry_service),
):
    """
    Caller's role on a subdomain.

    Anonymous callers get ``none`` for claimed names; any caller gets
    ``unclaimed`` when no record exists.
    """
    user_id = user.user_id if user else None
    email = user.normalized_email if user else None
    access = await run_in_threadpool(service.resolve, name, user_id, email)
    return ResolveResponse(role=access.role, frozen=access.frozen)


@router.post(
    "/claim",
    response_model=ClaimResponse,
    status_code=status.HTTP_201_CREATED,
)
async def claim_subdomain(
    body: ClaimRequest,
    background_tasks: BackgroundTasks,
    user: RegistryTokenClaims = Depends(require_user),
    service: SubdomainRegistryService = Depends(get_registry_service),
    metadata_sync: AccessMetadataSync = Depends(get_metadata_sync),
):
    """
    Claim a subdomain for the caller.

    Errors:
        400 malformed name, 409 not available, 402 no subscription or
        quota exceeded
    """
    format_reason = registry_logic.validate_name_format(body.subdomain)
    if format_reason:
        raise RegistryValidationError("Invalid subdomain", reason=format_reason)

    result = await run_in_threadpool(service.create_claim, body.subdomain, user.user_id, user.pla)

    if result.error == registry_logic.ERROR_NOT_AVAILABLE:
        raise NotAvailableError(reason=result.reason, owner_id=result.owner_id)
    if result.error == registry_logic.ERROR_NO_SUBSCRIPTION:
        raise SubscriptionRequiredError()
    if result.error == registry_logic.ERROR_QUOTA_EXCEEDED:
        raise QuotaExceededError(current=result.current, quota=result.quota)

    if not result.already_owned:
        background_tasks.add_task(metadata_sync.push_user, user.user_id)

    return ClaimResponse(subdomain=result.subdomain)


@router.post("/invite", response_model=InviteResponse)
async def invite_collaborator(
    body: InviteRequest,
    user: RegistryTokenClaims = Depends(require_user),
    service: SubdomainRegistryService = Depends(get_registry_service),
):
    """Invite a collaborator by email. Only the owner may invite."""
    result = await run_in_threadpool(
        service.invite_collaborator,
        body.subdomain,
        user.user_id,
        body.email,
        body.right,
    )

    if result.error == registry_logic.ERROR_NOT_FOUND:
        raise NotFoundError("Subdomain not found")
    if result.error == registry_logic.ERROR_NOT_OWNER:
        raise ForbiddenError("Only the owner can invite collaborators", reason="not_owner")
    if result.error == registry_logic.ERROR_ALREADY_ACTIVE:
        raise NotAvailableError(
            reason=registry_logic.ERROR_ALREADY_ACTIVE,
            message="Collaborator already joined",
        )

    return InviteResponse(subdomain=result.subdomain, already_invited=result.already_invited)


@router.post("/join", response_model=JoinResponse)
async def join_subdomain(
    body: JoinRequest,
    background_tasks: BackgroundTasks,
    user: RegistryTokenClaims = Depends(require_user),
    service: SubdomainRegistryService = Depends(get_registry_service),
    metadata_sync: AccessMetadataSync = Depends(get_metadata_sync),
):
    """Redeem the pending invite addressed to the caller's token email."""
    email = user.normalized_email
    if not email:
        raise RegistryValidationError("Token has no email claim", reason="missing_email")

    result = await run_in_threadpool(service.join_invite, body.subdomain, email, user.user_id)

    if result.error == registry_logic.ERROR_NOT_FOUND:
        raise NotFoundError("Subdomain not found")
    if result.error == registry_logic.ERROR_NO_INVITE_FOUND:
        raise NotFoundError(
            "No pending invitation found for this email",
            reason=registry_logic.ERROR_NO_INVITE_FOUND,
        )

    background_tasks.add_task(metadata_sync.push_user, user.user_id)
    return JoinResponse(subdomain=result.subdomain)
