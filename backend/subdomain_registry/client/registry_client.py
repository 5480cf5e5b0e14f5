"""
Async HTTP client for the subdomain registry API.

Used by tenant applications (through AccessGate) and by collaboration
features that call /invite after their own invite flow succeeds.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from subdomain_registry.client.access_cache import ResolvedAccess
from subdomain_registry.client.exceptions import (
    RegistryAuthenticationError,
    RegistryClientError,
    RegistryConnectionError,
)
from subdomain_registry.models.registry import AccessRole

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0


class RegistryClient:
    """
    Async client for the registry API.

    Usage:
        async with RegistryClient("https://registry.example.com") as client:
            access = await client.resolve("acme", token=session_token)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Registry base URL
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None

        try:
            response = await self._client.request(method, endpoint, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("Registry request timeout", extra={"endpoint": endpoint})
            raise RegistryConnectionError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.warning(
                "Registry connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise RegistryConnectionError(f"Connection error: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code == 401:
            raise RegistryAuthenticationError(response=body)

        if response.status_code >= 400:
            raise RegistryClientError(
                body.get("error") or f"Registry error: {response.status_code}",
                status_code=response.status_code,
                response=body,
            )

        return body

    async def resolve(self, name: str, token: Optional[str] = None) -> ResolvedAccess:
        """Authoritative role/frozen for the caller on a subdomain."""
        body = await self._request("GET", f"/resolve/{name}", token=token)
        try:
            role = AccessRole(body.get("role"))
        except ValueError:
            raise RegistryClientError(f"Unexpected role in resolve response: {body.get('role')!r}")
        return ResolvedAccess(role=role, frozen=bool(body.get("frozen")), authoritative=True)

    async def check(self, name: str) -> Dict[str, Any]:
        return await self._request("GET", f"/check/{name}")

    async def claim(self, name: str, token: str) -> Dict[str, Any]:
        return await self._request("POST", "/claim", token=token, json={"subdomain": name})

    async def invite(self, name: str, email: str, token: str, right: str = "write") -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/invite",
            token=token,
            json={"subdomain": name, "email": email, "right": right},
        )

    async def join(self, name: str, token: str) -> Dict[str, Any]:
        return await self._request("POST", "/join", token=token, json={"subdomain": name})
