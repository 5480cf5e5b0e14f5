"""
Tests for Clerk billing webhooks.

Covers:
- Svix signature verification (missing headers, bad signature, no secret)
- subscription.deleted freezes; subscription.active unfreezes
- Quota drop releases newest claims
- Duplicate deliveries and unsupported events
- Handler payload parsing (payer, plan slug, quantity)
"""

import pytest
from fastapi.testclient import TestClient

from subdomain_registry.api.routes.webhooks import verify_webhook_payload
from subdomain_registry.app import create_app
from subdomain_registry.errors import RegistryValidationError
from subdomain_registry.services.billing_webhook_handler import BillingWebhookHandler
from subdomain_registry.services.quota_policy import QuotaPolicy


def subscription_event(event_type, user_id="user_owner", **data):
    return {
        "type": event_type,
        "data": {"payer": {"user_id": user_id}, **data},
    }


@pytest.fixture
def post_webhook(client, sign_webhook):
    """Sign and deliver an event."""
    def _post(payload, msg_id=None):
        body, headers = sign_webhook(payload, msg_id=msg_id)
        return client.post("/webhook", content=body, headers=headers)
    return _post


# =============================================================================
# Signature verification
# =============================================================================

class TestWebhookSignature:
    """Svix verification on POST /webhook."""

    def test_valid_signature(self, post_webhook):
        response = post_webhook(subscription_event("subscription.active"))
        assert response.status_code == 200
        assert response.json()["status"] == "processed"

    def test_missing_headers(self, client):
        response = client.post("/webhook", json=subscription_event("subscription.active"))
        assert response.status_code == 401
        assert response.json()["reason"] == "missing_signature_headers"

    def test_bad_signature(self, client, sign_webhook):
        body, headers = sign_webhook(subscription_event("subscription.active"))
        headers["svix-signature"] = "v1,AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="

        response = client.post("/webhook", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["reason"] == "invalid_signature"

    def test_tampered_body(self, client, sign_webhook):
        _, headers = sign_webhook(subscription_event("subscription.active", user_id="user_a"))
        forged = subscription_event("subscription.deleted", user_id="user_a")

        response = client.post("/webhook", json=forged, headers=headers)

        assert response.status_code == 401

    def test_verified_body_is_decoded(self, settings, sign_webhook):
        event = subscription_event("subscription.deleted", user_id="user_a")
        body, headers = sign_webhook(event)

        decoded = verify_webhook_payload(
            body.encode(),
            headers["svix-id"],
            headers["svix-timestamp"],
            headers["svix-signature"],
            settings.clerk_webhook_secret,
        )

        assert decoded == event

    def test_signed_cancellation_reaches_handler(self, post_webhook, seed_claim, repository):
        seed_claim("acme", "user_a")

        response = post_webhook(subscription_event("subscription.deleted", user_id="user_a"))

        assert response.status_code == 200
        assert response.json()["status"] == "processed"
        assert repository.get_subdomain("acme").status.value == "frozen"

    def test_signed_body_not_json(self, client, sign_webhook):
        body, headers = sign_webhook("not json {")

        response = client.post("/webhook", content=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["reason"] == "invalid_json"

    def test_secret_not_configured(self, make_settings, store, sign_webhook):
        client = TestClient(create_app(settings=make_settings(clerk_webhook_secret=""), store=store))
        body, headers = sign_webhook(subscription_event("subscription.active"))

        response = client.post("/webhook", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["reason"] == "webhook_not_configured"


# =============================================================================
# Billing lifecycle
# =============================================================================

class TestBillingLifecycle:
    """Freeze, unfreeze and release through signed deliveries."""

    def test_cancellation_freezes_owner_and_collaborator_view(
        self, client, post_webhook, service, seed_claim, auth_headers
    ):
        seed_claim("acme", "user_owner")
        service.invite_collaborator("acme", "user_owner", "bob@example.com")
        service.join_invite("acme", "bob@example.com", "user_bob")

        response = post_webhook(subscription_event("subscription.deleted"))

        assert response.status_code == 200
        assert client.get("/resolve/acme", headers=auth_headers("user_owner")).json() == {
            "role": "owner",
            "frozen": True,
        }
        assert client.get("/resolve/acme", headers=auth_headers("user_bob")).json() == {
            "role": "collaborator",
            "frozen": True,
        }

    def test_resubscribe_unfreezes_without_data_loss(
        self, client, post_webhook, service, seed_claim, repository, auth_headers
    ):
        seed_claim("acme", "user_owner", claimed_at="2025-01-01T00:00:00Z")
        service.invite_collaborator("acme", "user_owner", "bob@example.com")
        service.join_invite("acme", "bob@example.com", "user_bob")
        before = repository.get_subdomain("acme")
        post_webhook(subscription_event("subscription.deleted"))

        post_webhook(subscription_event("subscription.created"))

        after = repository.get_subdomain("acme")
        assert after.status.value == "active"
        assert after.frozen_at is None
        assert after.claimed_at == before.claimed_at
        assert after.collaborators == before.collaborators
        assert client.get("/resolve/acme", headers=auth_headers("user_owner")).json() == {
            "role": "owner",
            "frozen": False,
        }

    def test_quota_drop_releases_newest(self, client, post_webhook, seed_claim, repository):
        seed_claim("first", "user_owner", claimed_at="2025-01-01T00:00:00Z")
        seed_claim("second", "user_owner", claimed_at="2025-02-01T00:00:00Z")
        seed_claim("third", "user_owner", claimed_at="2025-03-01T00:00:00Z")

        response = post_webhook(subscription_event("subscription.updated", quantity=1))

        assert response.status_code == 200
        assert repository.get_subdomain("first") is not None
        assert repository.get_subdomain("second") is None
        assert repository.get_subdomain("third") is None
        assert client.get("/check/third").json() == {"available": True}

    def test_cancellation_clears_quota(self, post_webhook, seed_claim, repository):
        seed_claim("acme", "user_owner")
        post_webhook(subscription_event("subscription.active", quantity=3))
        assert repository.get_user_index("user_owner").quota == 3

        post_webhook(subscription_event("subscription.deleted"))

        assert repository.get_user_index("user_owner").quota is None

    def test_duplicate_delivery(self, post_webhook, seed_claim, repository):
        seed_claim("acme", "user_owner")
        event = subscription_event("subscription.deleted")

        first = post_webhook(event, msg_id="msg_dup")
        second = post_webhook(event, msg_id="msg_dup")

        assert first.json()["status"] == "processed"
        assert second.status_code == 200
        assert second.json()["status"] == "duplicate"
        assert repository.get_processed_event("msg_dup")["type"] == "subscription.deleted"

    def test_redelivery_with_new_id_converges(self, post_webhook, seed_claim, repository):
        seed_claim("acme", "user_owner")
        event = subscription_event("subscription.deleted")

        post_webhook(event)
        frozen_at = repository.get_subdomain("acme").frozen_at
        post_webhook(event)

        assert repository.get_subdomain("acme").frozen_at == frozen_at

    def test_unsupported_event_acknowledged(self, post_webhook):
        response = post_webhook({"type": "user.created", "data": {"id": "user_x"}})
        assert response.status_code == 200
        assert response.json()["status"] == "unsupported_event"

    def test_missing_user_is_bad_request(self, post_webhook):
        response = post_webhook({"type": "subscription.deleted", "data": {}})
        assert response.status_code == 400
        assert response.json()["reason"] == "missing_user_id"


# =============================================================================
# Handler
# =============================================================================

class TestBillingWebhookHandler:
    """Payload parsing without HTTP."""

    @pytest.fixture
    def handler(self, service, make_settings):
        policy = QuotaPolicy(make_settings(plan_quotas={"starter": 1, "pro": 3}))
        return BillingWebhookHandler(service, policy)

    def test_plan_slug_sets_quota(self, handler, repository):
        handler.handle_event("evt_1", subscription_event("subscription.active", plan={"slug": "pro"}))
        assert repository.get_user_index("user_owner").quota == 3

    def test_item_plan_slug(self, handler, repository):
        event = subscription_event(
            "subscription.updated", items=[{"plan": {"slug": "starter"}}]
        )
        handler.handle_event("evt_1", event)
        assert repository.get_user_index("user_owner").quota == 1

    def test_quantity_beats_plan(self, handler, repository):
        event = subscription_event("subscription.active", plan={"slug": "pro"}, quantity=7)
        handler.handle_event("evt_1", event)
        assert repository.get_user_index("user_owner").quota == 7

    def test_unknown_plan_is_unlimited(self, handler, repository):
        handler.handle_event("evt_1", subscription_event("subscription.active", plan={"slug": "mystery"}))
        assert repository.get_user_index("user_owner").quota is None

    def test_top_level_user_id(self, handler):
        result = handler.handle_event(
            "evt_1", {"type": "subscription.deleted", "data": {"user_id": "user_z"}}
        )
        assert result.user_id == "user_z"

    def test_affected_users_include_collaborators(self, handler, service, seed_claim):
        seed_claim("acme", "user_owner")
        service.invite_collaborator("acme", "user_owner", "bob@example.com")
        service.join_invite("acme", "bob@example.com", "user_bob")

        result = handler.handle_event("evt_1", subscription_event("subscription.deleted"))

        assert result.affected_user_ids == ["user_owner", "user_bob"]
        assert result.details == {"frozen": ["acme"]}

    def test_payload_without_data(self, handler):
        with pytest.raises(RegistryValidationError):
            handler.handle_event("evt_1", {"type": "subscription.active"})

    def test_non_object_payload(self, handler):
        with pytest.raises(RegistryValidationError):
            handler.handle_event("evt_1", ["subscription.active"])
