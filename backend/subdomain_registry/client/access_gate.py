"""
Client access gate.

Decides what a tenant application shows for one subdomain before it
renders. State machine: ``init -> resolved | error``.

Resolution tiers, first success wins:
1. AccessCache, keyed by (user, subdomain)
2. The ``subdomains`` custom claim of the session token (no network)
3. GET /resolve on the registry

The cache is written before the state changes, so a gate constructed right
after (same process, same subdomain) starts resolved. After a successful
claim the gate moves straight to ``resolved(owner)``; going back to
``init`` would re-read the pre-claim cache entry.
"""

import logging
from enum import Enum
from typing import Optional

import jwt

from subdomain_registry.client.access_cache import AccessCache, ResolvedAccess, get_access_cache
from subdomain_registry.client.exceptions import RegistryClientError
from subdomain_registry.client.registry_client import RegistryClient
from subdomain_registry.models.registry import AccessRole, normalize_name

logger = logging.getLogger(__name__)


class AccessGateState(str, Enum):
    INIT = "init"
    RESOLVED = "resolved"
    ERROR = "error"


class AccessView(str, Enum):
    """What the tenant application should render."""
    SIGN_IN = "sign_in"
    LOADING = "loading"
    ERROR = "error"
    CLAIM = "claim"
    APP = "app"
    RESUBSCRIBE = "resubscribe"
    ASK_OWNER = "ask_owner"
    JOIN = "join"
    DENIED = "denied"


def access_from_token(token: str, name: str) -> Optional[ResolvedAccess]:
    """
    Read role/frozen for name from the token's ``subdomains`` claim.

    The signature is not checked here: the registry verifies tokens on
    every call that matters, and a forged claim only changes what the
    client renders.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        logger.debug("Session token could not be decoded for fast-path access")
        return None

    subdomains = claims.get("subdomains")
    if not isinstance(subdomains, dict):
        return None
    entry = subdomains.get(name)
    if not isinstance(entry, dict):
        return None
    try:
        role = AccessRole(entry.get("role"))
    except ValueError:
        return None
    return ResolvedAccess(role=role, frozen=bool(entry.get("frozen")), authoritative=False)


class AccessGate:
    """
    Access decision for one subdomain and one (possibly anonymous) user.

    Usage:
        gate = AccessGate("acme", client, user_id=user_id, token=token)
        await gate.resolve()
        if gate.view() == AccessView.APP:
            ...
    """

    def __init__(
        self,
        name: str,
        client: RegistryClient,
        user_id: Optional[str] = None,
        token: Optional[str] = None,
        cache: Optional[AccessCache] = None,
    ):
        self.name = normalize_name(name)
        self.client = client
        self.user_id = user_id
        self.token = token
        self.cache = cache if cache is not None else get_access_cache()

        self.access: Optional[ResolvedAccess] = None
        self.error: Optional[Exception] = None
        self.state = AccessGateState.INIT

        # Initial state comes from the cache so a rebuilt gate never flashes
        # an unresolved view for a subdomain already resolved.
        if self.signed_in:
            cached = self.cache.get(self.name, self.user_id)
            if cached is not None:
                self.access = cached
                self.state = AccessGateState.RESOLVED

    @property
    def signed_in(self) -> bool:
        return bool(self.token)

    def _transition(self, access: ResolvedAccess) -> None:
        self.cache.set(self.name, access, self.user_id)
        self.access = access
        self.error = None
        self.state = AccessGateState.RESOLVED

    async def resolve(self) -> AccessGateState:
        """Run the resolution tiers until one answers."""
        if not self.signed_in:
            return self.state

        cached = self.cache.get(self.name, self.user_id)
        if cached is not None:
            self.access = cached
            self.state = AccessGateState.RESOLVED
            return self.state

        from_token = access_from_token(self.token, self.name)
        if from_token is not None:
            self._transition(from_token)
            return self.state

        return await self._resolve_from_registry()

    async def _resolve_from_registry(self) -> AccessGateState:
        try:
            access = await self.client.resolve(self.name, token=self.token)
        except RegistryClientError as e:
            logger.warning(
                "Access resolve failed",
                extra={"subdomain": self.name, "status_code": e.status_code},
            )
            self.error = e
            self.state = AccessGateState.ERROR
            return self.state

        self._transition(access)
        return self.state

    async def retry(self) -> AccessGateState:
        """Retry after an error; skips straight to the network tier."""
        if not self.signed_in:
            return self.state
        self.cache.invalidate(self.name, self.user_id)
        self.state = AccessGateState.INIT
        self.error = None
        return await self._resolve_from_registry()

    def on_claim_success(self) -> None:
        """The caller just claimed this subdomain."""
        self._transition(ResolvedAccess(role=AccessRole.OWNER, frozen=False, authoritative=True))

    def on_join_success(self) -> None:
        """The caller just redeemed an invite for this subdomain."""
        self._transition(
            ResolvedAccess(role=AccessRole.COLLABORATOR, frozen=False, authoritative=True)
        )

    def view(self) -> AccessView:
        """Map the current state to what should be rendered."""
        if not self.signed_in:
            return AccessView.SIGN_IN
        if self.state == AccessGateState.INIT:
            return AccessView.LOADING
        if self.state == AccessGateState.ERROR:
            return AccessView.ERROR

        access = self.access
        if access.role == AccessRole.UNCLAIMED:
            return AccessView.CLAIM
        if access.role == AccessRole.OWNER:
            return AccessView.RESUBSCRIBE if access.frozen else AccessView.APP
        if access.role == AccessRole.COLLABORATOR:
            return AccessView.ASK_OWNER if access.frozen else AccessView.APP
        if access.role == AccessRole.INVITED:
            return AccessView.JOIN
        if access.authoritative:
            return AccessView.DENIED
        return AccessView.DENIED if access.frozen else AccessView.CLAIM
