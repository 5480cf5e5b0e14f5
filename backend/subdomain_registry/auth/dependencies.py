"""
FastAPI dependencies for bearer-token authentication.

Usage:

    @router.post("/claim")
    async def claim(user: RegistryTokenClaims = Depends(require_user)):
        ...

    @router.get("/resolve/{name}")
    async def resolve(name: str, user: Optional[RegistryTokenClaims] = Depends(optional_user)):
        ...

The verifier lives on ``app.state.token_verifier``; it is None when neither
a PEM key nor an issuer is configured, in which case every bearer token is
rejected.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from subdomain_registry.auth.clerk_verifier import ClerkJWTVerifier, ClerkVerificationError
from subdomain_registry.auth.jwt import RegistryTokenClaims, parse_claims
from subdomain_registry.errors import UnauthorizedError

logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def get_token_verifier(request: Request) -> Optional[ClerkJWTVerifier]:
    return getattr(request.app.state, "token_verifier", None)


async def _verify(verifier: Optional[ClerkJWTVerifier], token: str) -> RegistryTokenClaims:
    if verifier is None:
        logger.error("Bearer token received but Clerk verification is not configured")
        raise UnauthorizedError(reason="auth_not_configured")

    try:
        # JWKS lookups may hit the network
        claims = await run_in_threadpool(verifier.verify_token, token)
    except ClerkVerificationError as e:
        raise UnauthorizedError(reason=e.error_code)

    try:
        return parse_claims(claims)
    except ValidationError:
        raise UnauthorizedError(reason="invalid_claims")


async def optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: Optional[ClerkJWTVerifier] = Depends(get_token_verifier),
) -> Optional[RegistryTokenClaims]:
    """
    Claims of the caller if a bearer token was sent.

    A token that is present but invalid is rejected, not treated as anonymous.
    """
    if credentials is None:
        return None
    return await _verify(verifier, credentials.credentials)


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: Optional[ClerkJWTVerifier] = Depends(get_token_verifier),
) -> RegistryTokenClaims:
    """Claims of the caller; 401 when no valid bearer token is present."""
    if credentials is None:
        raise UnauthorizedError(reason="missing_token")
    return await _verify(verifier, credentials.credentials)
