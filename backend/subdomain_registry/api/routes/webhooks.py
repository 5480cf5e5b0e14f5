"""
Clerk billing webhook endpoint.

SECURITY: Every delivery MUST pass Svix signature verification before
processing. Clerk delivers webhooks through Svix; the signature covers
``{svix-id}.{svix-timestamp}.{body}`` and svix rejects stale timestamps.

Documentation: https://clerk.com/docs/webhooks

Supported Events:
- subscription.created, subscription.updated, subscription.active
- subscription.deleted
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from starlette.concurrency import run_in_threadpool
from svix.webhooks import Webhook, WebhookVerificationError

from subdomain_registry.api.dependencies import (
    get_metadata_sync,
    get_registry_settings,
    get_webhook_handler,
)
from subdomain_registry.api.schemas.registry import WebhookResponse
from subdomain_registry.config.settings import RegistrySettings
from subdomain_registry.errors import RegistryValidationError, UnauthorizedError
from subdomain_registry.services.billing_webhook_handler import BillingWebhookHandler
from subdomain_registry.services.metadata_sync import AccessMetadataSync

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def verify_webhook_payload(
    payload: bytes,
    svix_id: Optional[str],
    svix_timestamp: Optional[str],
    svix_signature: Optional[str],
    webhook_secret: str,
):
    """
    Verify a Svix-signed delivery and return the decoded event.

    The signature check runs over the raw bytes; the body is decoded only
    after it passes.

    Raises:
        UnauthorizedError: Secret unset, a header missing, or a bad signature
        RegistryValidationError: Signed body is not valid JSON
    """
    if not webhook_secret:
        logger.error("CLERK_WEBHOOK_SECRET not configured")
        raise UnauthorizedError("Webhook handler not configured", reason="webhook_not_configured")

    if not all([svix_id, svix_timestamp, svix_signature]):
        logger.warning("Missing Svix headers")
        raise UnauthorizedError("Invalid webhook signature", reason="missing_signature_headers")

    try:
        wh = Webhook(webhook_secret)
        wh.verify(
            payload,
            {
                "svix-id": svix_id,
                "svix-timestamp": svix_timestamp,
                "svix-signature": svix_signature,
            },
        )
    except WebhookVerificationError as e:
        logger.warning("Webhook signature verification failed", extra={"error": str(e)})
        raise UnauthorizedError("Invalid webhook signature", reason="invalid_signature")
    except ValueError as e:
        # Malformed secret (bad base64)
        logger.error("Webhook could not be verified", extra={"error": str(e)})
        raise UnauthorizedError("Invalid webhook signature", reason="invalid_signature")

    try:
        return json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Webhook body is not valid JSON", extra={"event_id": svix_id, "error": str(e)})
        raise RegistryValidationError("Invalid webhook payload", reason="invalid_json")


@router.post("/webhook", response_model=WebhookResponse)
async def handle_billing_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    svix_id: Optional[str] = Header(None, alias="svix-id"),
    svix_timestamp: Optional[str] = Header(None, alias="svix-timestamp"),
    svix_signature: Optional[str] = Header(None, alias="svix-signature"),
    settings: RegistrySettings = Depends(get_registry_settings),
    handler: BillingWebhookHandler = Depends(get_webhook_handler),
    metadata_sync: AccessMetadataSync = Depends(get_metadata_sync),
):
    """
    Handle Clerk subscription webhooks.

    Security:
    - Verifies Svix signature using CLERK_WEBHOOK_SECRET
    - Does not require JWT authentication (server-to-server)

    Returns:
        WebhookResponse; unsupported event types are acknowledged as ignored
    """
    payload = await request.body()
    event = verify_webhook_payload(
        payload, svix_id, svix_timestamp, svix_signature, settings.clerk_webhook_secret
    )

    logger.info(
        "Received webhook event",
        extra={"event_id": svix_id, "event_type": event.get("type") if isinstance(event, dict) else None},
    )

    result = await run_in_threadpool(handler.handle_event, svix_id, event)

    if result.affected_user_ids:
        background_tasks.add_task(metadata_sync.push_users, result.affected_user_ids)

    if result.processed:
        return WebhookResponse(status="processed", message=result.message)
    return WebhookResponse(status=result.skipped_reason or "ignored", message=result.message)
