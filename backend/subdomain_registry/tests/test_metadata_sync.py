"""
Tests for pushing access summaries to Clerk user metadata.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from subdomain_registry.app import create_app
from subdomain_registry.integrations.clerk import (
    ClerkAPIError,
    ClerkAuthenticationError,
    ClerkConnectionError,
    ClerkMetadataClient,
    ClerkUserNotFoundError,
)
from subdomain_registry.services.metadata_sync import AccessMetadataSync


class ClerkRecorder:
    """MockTransport handler standing in for the Clerk Backend API."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"id": "user_a"})


class TestClerkMetadataClient:
    """PATCH /users/{id}/metadata"""

    @pytest.mark.asyncio
    async def test_patch_body(self):
        recorder = ClerkRecorder()
        async with ClerkMetadataClient(
            "sk_test", base_url="https://clerk.test/v1", transport=httpx.MockTransport(recorder)
        ) as client:
            await client.update_subdomain_metadata("user_a", {"acme": {"role": "owner", "frozen": False}})

        request = recorder.requests[0]
        assert request.method == "PATCH"
        assert str(request.url) == "https://clerk.test/v1/users/user_a/metadata"
        assert request.headers["Authorization"] == "Bearer sk_test"
        assert json.loads(request.content) == {
            "public_metadata": {"subdomains": {"acme": {"role": "owner", "frozen": False}}}
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,error", [
        (401, ClerkAuthenticationError),
        (404, ClerkUserNotFoundError),
    ])
    async def test_error_mapping(self, status_code, error):
        transport = httpx.MockTransport(ClerkRecorder(status_code))
        async with ClerkMetadataClient("sk_test", transport=transport) as client:
            with pytest.raises(error):
                await client.update_subdomain_metadata("user_a", {})

    @pytest.mark.asyncio
    async def test_timeout(self):
        def timeout(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with ClerkMetadataClient("sk_test", transport=httpx.MockTransport(timeout)) as client:
            with pytest.raises(ClerkConnectionError):
                await client.update_subdomain_metadata("user_a", {})

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        def html(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with ClerkMetadataClient("sk_test", transport=httpx.MockTransport(html)) as client:
            with pytest.raises(ClerkAPIError):
                await client.update_subdomain_metadata("user_a", {})

    def test_secret_key_required(self):
        with pytest.raises(ValueError):
            ClerkMetadataClient("")


class TestAccessMetadataSync:
    """Best-effort pushes."""

    @pytest.mark.asyncio
    async def test_push_user_sends_summary(self, service, seed_claim):
        seed_claim("acme", "user_a")
        recorder = ClerkRecorder()
        sync = AccessMetadataSync(service, "sk_test", transport=httpx.MockTransport(recorder))

        assert await sync.push_user("user_a") is True

        body = json.loads(recorder.requests[0].content)
        assert body["public_metadata"]["subdomains"] == {"acme": {"role": "owner", "frozen": False}}

    @pytest.mark.asyncio
    async def test_disabled_without_secret(self, service):
        sync = AccessMetadataSync(service, "")
        assert sync.enabled is False
        assert await sync.push_user("user_a") is False

    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_logged(self, service, caplog):
        sync = AccessMetadataSync(service, "sk_test", transport=httpx.MockTransport(ClerkRecorder(500)))

        assert await sync.push_user("user_a") is False
        assert "Metadata push failed" in caplog.text

    @pytest.mark.asyncio
    async def test_non_json_body_is_a_failed_push(self, service):
        def html(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        sync = AccessMetadataSync(service, "sk_test", transport=httpx.MockTransport(html))

        assert await sync.push_user("user_a") is False

    @pytest.mark.asyncio
    async def test_push_users_deduplicates(self, service):
        recorder = ClerkRecorder()
        sync = AccessMetadataSync(service, "sk_test", transport=httpx.MockTransport(recorder))

        assert await sync.push_users(["user_a", "user_b", "user_a"]) == 2
        assert len(recorder.requests) == 2


class TestClaimTriggersPush:
    """Routes schedule a push after a successful claim."""

    def test_claim_pushes_owner_summary(self, make_settings, store, auth_headers):
        recorder = ClerkRecorder()
        app = create_app(
            settings=make_settings(clerk_secret_key="sk_test", clerk_api_url="https://clerk.test/v1"),
            store=store,
            metadata_transport=httpx.MockTransport(recorder),
        )
        client = TestClient(app)

        response = client.post("/claim", json={"subdomain": "acme"}, headers=auth_headers("user_a"))

        assert response.status_code == 201
        assert len(recorder.requests) == 1
        assert recorder.requests[0].url.path == "/v1/users/user_a/metadata"
