"""
Billing webhook handler for Clerk subscription events.

Handles:
- subscription.created / subscription.updated / subscription.active:
  set the owner's quota, unfreeze their subdomains, release excess claims
- subscription.deleted: freeze the owner's subdomains, clear their quota

Every handler is made of idempotent set-operations, so at-least-once
delivery is safe without deduplication. Processed event ids are still
recorded in a ledger keyed by svix-id; a redelivered id is acknowledged
without being re-applied.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from subdomain_registry.errors import RegistryValidationError
from subdomain_registry.services.quota_policy import QuotaPolicy
from subdomain_registry.services.registry_service import SubdomainRegistryService

logger = logging.getLogger(__name__)


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    user_id: Optional[str] = None
    skipped_reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    # Users whose access summary changed and should be re-pushed
    affected_user_ids: List[str] = field(default_factory=list)


class BillingWebhookHandler:
    """
    Routes verified Clerk billing events to registry operations.

    Usage:
        handler = BillingWebhookHandler(service, quota_policy)
        result = handler.handle_event(svix_id, payload)
    """

    def __init__(self, service: SubdomainRegistryService, quota_policy: QuotaPolicy):
        self.service = service
        self.quota_policy = quota_policy

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def _is_duplicate(self, event_id: Optional[str]) -> bool:
        if not event_id:
            return False
        return self.service.repository.get_processed_event(event_id) is not None

    def _record_event(self, event_id: Optional[str], event_type: str, user_id: Optional[str]) -> None:
        if not event_id:
            return
        self.service.repository.record_processed_event(event_id, event_type, user_id)

    # ------------------------------------------------------------------
    # Payload helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_user_id(data: Dict[str, Any]) -> Optional[str]:
        payer = data.get("payer")
        if isinstance(payer, dict) and payer.get("user_id"):
            return payer["user_id"]
        return data.get("user_id") or None

    @staticmethod
    def _extract_plan_slug(data: Dict[str, Any]) -> Optional[str]:
        plan = data.get("plan")
        if isinstance(plan, dict) and plan.get("slug"):
            return plan["slug"]
        if isinstance(data.get("plan_slug"), str):
            return data["plan_slug"]
        for item in data.get("items") or []:
            item_plan = item.get("plan") if isinstance(item, dict) else None
            if isinstance(item_plan, dict) and item_plan.get("slug"):
                return item_plan["slug"]
        return None

    def _quota_from_data(self, data: Dict[str, Any]) -> Optional[int]:
        """
        Quota for an active subscription.

        An explicit integer ``quantity`` wins; otherwise the plan slug is
        looked up in PLAN_QUOTAS; otherwise unlimited (None).
        """
        quantity = data.get("quantity")
        if isinstance(quantity, int) and not isinstance(quantity, bool):
            return quantity
        return self.quota_policy.quota_for_plan(self._extract_plan_slug(data))

    def _collaborator_ids(self, user_id: str) -> List[str]:
        ids: List[str] = []
        for name in self.service.get_user_claims(user_id):
            record = self.service.get_record(name)
            if record is not None:
                ids.extend(record.active_collaborator_ids())
        return ids

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle_event(self, event_id: Optional[str], payload: Dict[str, Any]) -> WebhookProcessingResult:
        """
        Route a verified event to its handler.

        Args:
            event_id: svix-id header of the delivery
            payload: Decoded event body ({"type": ..., "data": {...}})

        Returns:
            WebhookProcessingResult

        Raises:
            RegistryValidationError: Payload lacks a type, data, or user id
        """
        if not isinstance(payload, dict):
            raise RegistryValidationError("Webhook payload must be a JSON object")

        event_type = payload.get("type")
        data = payload.get("data")
        if not event_type or not isinstance(data, dict):
            raise RegistryValidationError("Webhook payload missing type or data")

        handlers = {
            "subscription.created": self.handle_subscription_active,
            "subscription.updated": self.handle_subscription_active,
            "subscription.active": self.handle_subscription_active,
            "subscription.deleted": self.handle_subscription_deleted,
        }

        handler = handlers.get(event_type)
        if not handler:
            logger.info("Ignoring webhook event", extra={"event_type": event_type})
            return WebhookProcessingResult(
                processed=False,
                message=f"Unsupported event type: {event_type}",
                skipped_reason="unsupported_event",
            )

        user_id = self._extract_user_id(data)
        if not user_id:
            raise RegistryValidationError("Missing user_id", reason="missing_user_id")

        if self._is_duplicate(event_id):
            logger.info(
                "Skipping duplicate webhook event",
                extra={"event_id": event_id, "event_type": event_type},
            )
            return WebhookProcessingResult(
                processed=False,
                message="Event already processed",
                user_id=user_id,
                skipped_reason="duplicate",
            )

        result = handler(user_id, data)
        self._record_event(event_id, event_type, user_id)

        logger.info(
            "Processed webhook event",
            extra={"event_id": event_id, "event_type": event_type, "user_id": user_id},
        )
        return result

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def handle_subscription_active(self, user_id: str, data: Dict[str, Any]) -> WebhookProcessingResult:
        quota = self._quota_from_data(data)
        self.service.set_quota(user_id, quota)
        unfrozen = self.service.unfreeze_user_subdomains(user_id)

        released: List[str] = []
        if quota is not None and len(self.service.get_user_claims(user_id)) > quota:
            released = self.service.release_excess_claims(user_id, quota).released

        return WebhookProcessingResult(
            processed=True,
            message="Subscription active",
            user_id=user_id,
            details={"quota": quota, "unfrozen": unfrozen, "released": released},
            affected_user_ids=[user_id, *self._collaborator_ids(user_id)],
        )

    def handle_subscription_deleted(self, user_id: str, data: Dict[str, Any]) -> WebhookProcessingResult:
        frozen = self.service.freeze_user_subdomains(user_id)
        self.service.set_quota(user_id, None)

        return WebhookProcessingResult(
            processed=True,
            message="Subscription deleted",
            user_id=user_id,
            details={"frozen": frozen},
            affected_user_ids=[user_id, *self._collaborator_ids(user_id)],
        )
