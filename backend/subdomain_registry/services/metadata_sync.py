"""
Best-effort push of access summaries to Clerk user metadata.

Runs after claim, join and billing state changes as a FastAPI background
task. A failed push is logged and never fails the request that triggered
it; the next successful push overwrites the stale summary.
"""

import logging
from typing import Iterable, Optional

import httpx
from starlette.concurrency import run_in_threadpool

from subdomain_registry.errors import StoreFailureError
from subdomain_registry.integrations.clerk import ClerkAPIError, ClerkMetadataClient
from subdomain_registry.services.registry_service import SubdomainRegistryService

logger = logging.getLogger(__name__)


class AccessMetadataSync:
    """Pushes ``{name: {role, frozen}}`` summaries for users to Clerk."""

    def __init__(
        self,
        service: SubdomainRegistryService,
        secret_key: Optional[str],
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.service = service
        self._secret_key = secret_key
        self._api_url = api_url
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._secret_key)

    async def push_user(self, user_id: str) -> bool:
        """
        Push one user's summary.

        Returns:
            True if Clerk accepted the update, False if disabled or failed
        """
        if not self.enabled:
            return False

        try:
            summary = await run_in_threadpool(self.service.access_summary, user_id)
            async with ClerkMetadataClient(
                self._secret_key,
                base_url=self._api_url,
                transport=self._transport,
            ) as client:
                await client.update_subdomain_metadata(user_id, summary)
        except (ClerkAPIError, StoreFailureError) as e:
            logger.warning(
                "Metadata push failed",
                extra={"user_id": user_id, "error": str(e)},
            )
            return False

        logger.debug(
            "Metadata pushed",
            extra={"user_id": user_id, "subdomains": len(summary)},
        )
        return True

    async def push_users(self, user_ids: Iterable[str]) -> int:
        """Push several users; returns how many succeeded."""
        pushed = 0
        for user_id in dict.fromkeys(user_ids):
            if await self.push_user(user_id):
                pushed += 1
        return pushed
