"""
Clerk Backend API integration.

Pushes subdomain access summaries into Clerk user public metadata.
"""

from subdomain_registry.integrations.clerk.client import ClerkMetadataClient
from subdomain_registry.integrations.clerk.exceptions import (
    ClerkAPIError,
    ClerkAuthenticationError,
    ClerkConnectionError,
    ClerkUserNotFoundError,
)

__all__ = [
    # Client
    "ClerkMetadataClient",
    # Exceptions
    "ClerkAPIError",
    "ClerkAuthenticationError",
    "ClerkConnectionError",
    "ClerkUserNotFoundError",
]
