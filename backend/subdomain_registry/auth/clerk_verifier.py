"""
Clerk JWT verifier for registry requests.

This module handles:
- RS256 signature verification against a static PEM key or Clerk's JWKS
- exp/nbf validation with clock-skew leeway
- Authorized-party (azp) checks against PERMITTED_ORIGINS

SECURITY:
- Clerk is the ONLY authentication authority
- The registry never issues tokens
- Tokens are never logged

PERMITTED_ORIGINS entries are exact origins or patterns where ``*`` matches
exactly one DNS label: ``https://*.vibes.diy`` accepts
``https://acme.vibes.diy`` but not ``https://a.b.vibes.diy``.
"""

import logging
import re
import time
from threading import Lock
from typing import Any, Dict, List, Optional

import jwt
from jwt import PyJWKClient, PyJWKClientError
from jwt.exceptions import (
    ExpiredSignatureError,
    ImmatureSignatureError,
    InvalidIssuerError,
    InvalidTokenError,
)

logger = logging.getLogger(__name__)


class ClerkVerificationError(Exception):
    """Exception raised when Clerk JWT verification fails."""

    def __init__(self, message: str, error_code: str = "verification_failed"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


def match_azp(azp: Optional[str], permitted_origins: List[str]) -> bool:
    """
    Check the authorized-party claim against permitted origins.

    A missing azp, or an empty origin list, is accepted.
    """
    if not azp or not permitted_origins:
        return True

    for pattern in permitted_origins:
        if pattern == azp:
            return True
        if "*" in pattern:
            regex = "^" + re.escape(pattern).replace(r"\*", "[^.]+") + "$"
            if re.match(regex, azp):
                return True
    return False


class ClerkJWTVerifier:
    """
    Verifies Clerk-issued JWTs.

    Uses the PEM public key when configured (no network); otherwise fetches
    signing keys from ``<issuer>/.well-known/jwks.json``.

    Usage:
        verifier = ClerkJWTVerifier(pem_public_key=settings.clerk_pem_public_key)
        claims = verifier.verify_token(token)
        user_id = claims["sub"]
    """

    # JWKS cache duration in seconds
    JWKS_CACHE_DURATION = 3600

    # Clock skew tolerance in seconds (for exp/nbf validation)
    CLOCK_SKEW_SECONDS = 60

    def __init__(
        self,
        pem_public_key: Optional[str] = None,
        issuer: Optional[str] = None,
        permitted_origins: Optional[List[str]] = None,
        jwks_url: Optional[str] = None,
    ):
        """
        Args:
            pem_public_key: Clerk instance public key (PEM)
            issuer: Clerk frontend API URL; also validated as ``iss`` when set
            permitted_origins: Allowed azp values/patterns
            jwks_url: Override for the JWKS endpoint
        """
        if not pem_public_key and not issuer:
            raise ClerkVerificationError(
                "CLERK_PEM_PUBLIC_KEY or CLERK_ISSUER_URL is required",
                error_code="config_error",
            )

        self._pem_public_key = pem_public_key or None
        self._issuer = issuer.rstrip("/") if issuer else None
        self._permitted_origins = list(permitted_origins or [])
        self._jwks_url = jwks_url or (
            f"{self._issuer}/.well-known/jwks.json" if self._issuer else None
        )

        self._jwks_client: Optional[PyJWKClient] = None
        self._jwks_client_lock = Lock()
        self._jwks_last_refresh: float = 0

        logger.info(
            "Initialized ClerkJWTVerifier",
            extra={
                "issuer": self._issuer,
                "key_source": "pem" if self._pem_public_key else "jwks",
                "permitted_origins": len(self._permitted_origins),
            },
        )

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_client_lock:
            now = time.time()
            if (
                self._jwks_client is None
                or now - self._jwks_last_refresh > self.JWKS_CACHE_DURATION
            ):
                self._jwks_client = PyJWKClient(
                    self._jwks_url,
                    cache_keys=True,
                    lifespan=self.JWKS_CACHE_DURATION,
                )
                self._jwks_last_refresh = now
                logger.debug("Refreshed JWKS client", extra={"jwks_url": self._jwks_url})
            return self._jwks_client

    def _signing_key(self, token: str):
        if self._pem_public_key:
            return self._pem_public_key
        return self._get_jwks_client().get_signing_key_from_jwt(token).key

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a Clerk JWT and return its claims.

        Args:
            token: The JWT, with or without a "Bearer " prefix

        Returns:
            Dict containing the verified JWT claims

        Raises:
            ClerkVerificationError: If verification fails
        """
        if not token:
            raise ClerkVerificationError("Token is required", error_code="missing_token")

        if token.startswith("Bearer "):
            token = token[7:]

        decode_options = {
            "verify_signature": True,
            "verify_exp": True,
            "verify_nbf": True,
            "verify_aud": False,
            "require": ["sub", "exp"],
        }

        try:
            claims = jwt.decode(
                token,
                self._signing_key(token),
                algorithms=["RS256"],
                issuer=self._issuer if not self._pem_public_key else None,
                options=decode_options,
                leeway=self.CLOCK_SKEW_SECONDS,
            )
        except ExpiredSignatureError:
            logger.warning("Token has expired")
            raise ClerkVerificationError("Token has expired", error_code="token_expired")
        except ImmatureSignatureError:
            logger.warning("Token is not yet valid")
            raise ClerkVerificationError("Token is not yet valid", error_code="not_yet_valid")
        except InvalidIssuerError:
            logger.warning("Invalid token issuer")
            raise ClerkVerificationError("Invalid token issuer", error_code="invalid_issuer")
        except PyJWKClientError as e:
            logger.error("JWKS client error", extra={"error": str(e)})
            raise ClerkVerificationError(
                f"Failed to fetch signing key: {e}",
                error_code="jwks_error",
            )
        except InvalidTokenError as e:
            logger.warning("Invalid token", extra={"error": str(e)})
            raise ClerkVerificationError(f"Invalid token: {e}", error_code="invalid_token")

        if not match_azp(claims.get("azp"), self._permitted_origins):
            logger.warning("Token azp not permitted", extra={"azp": claims.get("azp")})
            raise ClerkVerificationError("Invalid authorized party", error_code="invalid_azp")

        logger.debug("Token verified", extra={"sub": claims.get("sub")})
        return claims
