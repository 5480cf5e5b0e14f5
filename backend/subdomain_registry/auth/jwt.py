"""
Claims carried by Clerk-issued tokens that the registry reads.

JWT Claims Used:
- sub: Clerk user id (the registry's user id)
- email: Primary email (session token template claim)
- pla: Active plan, ``u:<slug>`` (set by Clerk billing)
- azp: Authorized party (checked by the verifier)
- subdomains: Optional ``{name: {role, frozen}}`` map, filled from public
  metadata so clients can resolve access without a network call
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from subdomain_registry.models.registry import AccessRole, normalize_email


class SubdomainAccessClaim(BaseModel):
    """One entry of the ``subdomains`` custom claim."""

    role: AccessRole
    frozen: bool = False

    model_config = ConfigDict(extra="ignore")


class RegistryTokenClaims(BaseModel):
    """Verified token claims."""

    sub: str = Field(..., description="Clerk user ID")
    exp: Optional[int] = Field(None, description="Expiration timestamp (Unix)")
    iat: Optional[int] = Field(None, description="Issued at timestamp (Unix)")
    azp: Optional[str] = Field(None, description="Authorized party")
    email: Optional[str] = Field(None, description="Primary email address")
    pla: Optional[str] = Field(None, description="Active plan (u:<slug>)")
    subdomains: Dict[str, SubdomainAccessClaim] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    @property
    def user_id(self) -> str:
        return self.sub

    @property
    def normalized_email(self) -> Optional[str]:
        return normalize_email(self.email) if self.email else None


def parse_claims(claims: Dict[str, Any]) -> RegistryTokenClaims:
    """
    Build RegistryTokenClaims from a decoded payload.

    A malformed ``subdomains`` claim is dropped rather than failing auth:
    it is only a fast-path hint.
    """
    data = dict(claims)
    subdomains = data.get("subdomains")
    if not isinstance(subdomains, dict):
        data.pop("subdomains", None)
    else:
        data["subdomains"] = {
            name: entry
            for name, entry in subdomains.items()
            if isinstance(entry, dict) and entry.get("role") in {r.value for r in AccessRole}
        }
    return RegistryTokenClaims.model_validate(data)
