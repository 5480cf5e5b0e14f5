"""
Clerk Backend API client for user metadata.

Pushes each user's ``{subdomain: {role, frozen}}`` summary into Clerk
public metadata. A session token template can then copy it into the
``subdomains`` claim, which lets clients resolve access with no registry
round trip.

Documentation: https://clerk.com/docs/reference/backend-api/tag/Users#operation/UpdateUserMetadata

SECURITY:
- CLERK_SECRET_KEY must never be logged
"""

import logging
from typing import Any, Dict, Optional

import httpx

from subdomain_registry.integrations.clerk.exceptions import (
    ClerkAPIError,
    ClerkAuthenticationError,
    ClerkConnectionError,
    ClerkUserNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.clerk.com/v1"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0


class ClerkMetadataClient:
    """
    Async client for Clerk user metadata updates.

    Usage:
        async with ClerkMetadataClient(secret_key) as client:
            await client.update_subdomain_metadata(user_id, summary)
    """

    def __init__(
        self,
        secret_key: str,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            secret_key: Clerk secret key (sk_...)
            base_url: API base URL (default: https://api.clerk.com/v1)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests)
        """
        if not secret_key:
            raise ValueError("Clerk secret key is required for metadata updates")

        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {secret_key}",
            },
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "ClerkMetadataClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def update_subdomain_metadata(
        self,
        user_id: str,
        subdomains: Dict[str, Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Replace the ``subdomains`` key of a user's public metadata.

        Clerk deep-merges the PATCH body into existing metadata, so other
        public metadata keys are left alone.

        Args:
            user_id: Clerk user id
            subdomains: {name: {"role": ..., "frozen": ...}}

        Returns:
            The updated Clerk user object

        Raises:
            ClerkAPIError: On any API or network failure
        """
        endpoint = f"/users/{user_id}/metadata"
        url = f"{self.base_url}{endpoint}"
        body = {"public_metadata": {"subdomains": subdomains}}

        try:
            response = await self._client.patch(url, json=body)
        except httpx.TimeoutException as e:
            logger.error("Clerk API timeout", extra={"endpoint": endpoint, "error": str(e)})
            raise ClerkConnectionError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error(
                "Clerk API connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise ClerkConnectionError(f"Connection error: {e}")

        if response.status_code in (401, 403):
            logger.error(
                "Clerk API authentication failed",
                extra={"status_code": response.status_code, "endpoint": endpoint},
            )
            raise ClerkAuthenticationError(status_code=response.status_code)

        if response.status_code == 404:
            raise ClerkUserNotFoundError(user_id)

        if response.status_code >= 400:
            logger.error(
                "Clerk API error",
                extra={
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                    "response": response.text[:500],
                },
            )
            raise ClerkAPIError(
                f"Clerk API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                "Clerk API returned a non-JSON body",
                extra={"status_code": response.status_code, "endpoint": endpoint},
            )
            raise ClerkAPIError(
                f"Invalid JSON response: {e}",
                status_code=response.status_code,
            )
