"""
Client-side access resolution for tenant applications.
"""

from subdomain_registry.client.access_cache import AccessCache, ResolvedAccess, get_access_cache
from subdomain_registry.client.access_gate import AccessGate, AccessGateState, AccessView
from subdomain_registry.client.exceptions import (
    RegistryAuthenticationError,
    RegistryClientError,
    RegistryConnectionError,
)
from subdomain_registry.client.registry_client import RegistryClient

__all__ = [
    "AccessCache",
    "AccessGate",
    "AccessGateState",
    "AccessView",
    "RegistryAuthenticationError",
    "RegistryClient",
    "RegistryClientError",
    "RegistryConnectionError",
    "ResolvedAccess",
    "get_access_cache",
]
