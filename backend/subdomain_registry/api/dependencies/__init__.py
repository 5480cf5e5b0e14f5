"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from subdomain_registry.api.dependencies.registry import (
    get_metadata_sync,
    get_quota_policy,
    get_registry_service,
    get_registry_settings,
    get_webhook_handler,
)

__all__ = [
    "get_metadata_sync",
    "get_quota_policy",
    "get_registry_service",
    "get_registry_settings",
    "get_webhook_handler",
]
