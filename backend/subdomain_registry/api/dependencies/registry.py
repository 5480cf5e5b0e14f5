"""
Registry service dependencies.

The app factory builds the service graph once and stores it on
``app.state``; these dependencies hand the pieces to route handlers.
"""

from fastapi import Request

from subdomain_registry.config.settings import RegistrySettings
from subdomain_registry.services.billing_webhook_handler import BillingWebhookHandler
from subdomain_registry.services.metadata_sync import AccessMetadataSync
from subdomain_registry.services.quota_policy import QuotaPolicy
from subdomain_registry.services.registry_service import SubdomainRegistryService


def get_registry_settings(request: Request) -> RegistrySettings:
    return request.app.state.settings


def get_registry_service(request: Request) -> SubdomainRegistryService:
    return request.app.state.registry_service


def get_quota_policy(request: Request) -> QuotaPolicy:
    return request.app.state.registry_service.quota_policy


def get_metadata_sync(request: Request) -> AccessMetadataSync:
    return request.app.state.metadata_sync


def get_webhook_handler(request: Request) -> BillingWebhookHandler:
    return request.app.state.webhook_handler
