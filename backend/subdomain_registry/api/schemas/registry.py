"""
Request and response models for the registry API.

Wire format is camelCase JSON, matching the stored records.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from subdomain_registry.models.registry import AccessRight, AccessRole, normalize_email, normalize_name


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Requests
# =============================================================================

class ClaimRequest(CamelModel):
    """Request to claim a subdomain."""
    subdomain: str = Field(..., min_length=1, max_length=255)

    @field_validator("subdomain")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_name(v)


class InviteRequest(CamelModel):
    """Owner invites a collaborator by email."""
    subdomain: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=320)
    right: AccessRight = AccessRight.WRITE

    @field_validator("subdomain")
    @classmethod
    def normalize_subdomain(cls, v: str) -> str:
        return normalize_name(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = normalize_email(v)
        if "@" not in v:
            raise ValueError("email must contain @")
        return v


class JoinRequest(CamelModel):
    """Invitee redeems an invite. The email always comes from the token."""
    subdomain: str = Field(..., min_length=1, max_length=255)

    @field_validator("subdomain")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_name(v)


class QuotaUpdateRequest(CamelModel):
    """Admin override of a user's quota. null clears the override."""
    user_id: str = Field(..., min_length=1)
    quota: Optional[int] = Field(None, ge=0)
    release_excess: bool = Field(False, description="Release newest claims above the new quota")


# =============================================================================
# Responses
# =============================================================================

class AvailabilityResponse(CamelModel):
    available: bool
    reason: Optional[str] = None
    owner_id: Optional[str] = None


class ResolveResponse(CamelModel):
    role: AccessRole
    frozen: bool


class ClaimResponse(CamelModel):
    success: bool = True
    subdomain: str


class InviteResponse(CamelModel):
    success: bool = True
    subdomain: str
    already_invited: bool = False


class JoinResponse(CamelModel):
    success: bool = True
    subdomain: str
    role: AccessRole = AccessRole.COLLABORATOR


class QuotaUpdateResponse(CamelModel):
    user_id: str
    quota: Optional[int] = None
    released: List[str] = Field(default_factory=list)


class WebhookResponse(CamelModel):
    """Standard webhook response."""
    received: bool = True
    status: str = "processed"
    message: Optional[str] = None


class HealthResponse(CamelModel):
    status: str
    store: str
    auth_configured: bool
    billing_mode: str
    plans: Dict[str, int] = Field(default_factory=dict)
