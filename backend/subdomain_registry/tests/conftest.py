"""
Shared fixtures for registry tests.

- rsa_keypair / create_test_token: Clerk-style RS256 tokens
- settings / make_settings: RegistrySettings wired to the test key
- store / repository / service: in-memory registry stack
- client: FastAPI TestClient over create_app
- sign_webhook: Svix-signed webhook deliveries
- seed_claim: write a record with an explicit claimedAt
"""

import base64
import dataclasses
import json
import os
import time
import uuid
from datetime import datetime, timezone

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from svix.webhooks import Webhook

from subdomain_registry.app import create_app
from subdomain_registry.config.settings import RegistrySettings
from subdomain_registry.models.registry import SubdomainRecord, UserIndex
from subdomain_registry.services.quota_policy import QuotaPolicy
from subdomain_registry.services.registry_service import SubdomainRegistryService
from subdomain_registry.storage import InMemoryRecordStore, RegistryRepository

# Set test environment
os.environ.setdefault("ENV", "test")

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"registry-webhook-test-secret-32b").decode()
RESERVED = ["admin", "api", "www"]


# =============================================================================
# Tokens
# =============================================================================

@pytest.fixture(scope="session")
def rsa_keypair():
    """Generate RSA keypair for testing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )
    public_key = private_key.public_key()

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption()
    )
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )

    return {
        "private_pem": private_pem,
        "public_pem": public_pem,
    }


@pytest.fixture
def create_test_token(rsa_keypair):
    """Factory to create test JWTs."""
    def _create(user_id="user_owner", claims=None, expired=False, invalid_sig=False):
        now = int(time.time())
        token_claims = {
            "sub": user_id,
            "exp": now - 3600 if expired else now + 3600,
            "iat": now,
            "nbf": now,
            "sid": f"sess_{user_id}",
            **(claims or {}),
        }

        key = rsa_keypair["private_pem"]
        if invalid_sig:
            bad_key = rsa.generate_private_key(65537, 2048, default_backend())
            key = bad_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.TraditionalOpenSSL,
                serialization.NoEncryption()
            )

        return jwt.encode(token_claims, key, algorithm="RS256", headers={"kid": "test-key-1"})
    return _create


@pytest.fixture
def auth_headers(create_test_token):
    """Factory for Authorization headers."""
    def _headers(user_id="user_owner", **claims):
        return {"Authorization": f"Bearer {create_test_token(user_id, claims=claims)}"}
    return _headers


# =============================================================================
# Settings and registry stack
# =============================================================================

@pytest.fixture
def make_settings(rsa_keypair):
    """Factory for settings that trust the test keypair."""
    def _make(**overrides):
        base = RegistrySettings(
            store_url="memory://",
            clerk_pem_public_key=rsa_keypair["public_pem"].decode(),
            clerk_webhook_secret=WEBHOOK_SECRET,
            reserved_subdomains=list(RESERVED),
        )
        return dataclasses.replace(base, **overrides)
    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def repository(store):
    return RegistryRepository(store, fallback_reserved=RESERVED)


@pytest.fixture
def service(repository, settings):
    return SubdomainRegistryService(repository, QuotaPolicy(settings, repository))


@pytest.fixture
def app(settings, store):
    return create_app(settings=settings, store=store)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def seed_claim(repository):
    """Write an owned record (and index entry) with an explicit claimedAt."""
    def _seed(name, owner_id, claimed_at="2025-01-01T00:00:00Z", **fields):
        record = SubdomainRecord(name=name, owner_id=owner_id, claimed_at=claimed_at, **fields)
        repository.put_subdomain(record)
        index = repository.get_user_index(owner_id) or UserIndex()
        index.add_owned(name)
        repository.put_user_index(owner_id, index)
        return record
    return _seed


# =============================================================================
# Webhooks
# =============================================================================

@pytest.fixture
def sign_webhook():
    """Build (body, headers) for a Svix-signed delivery."""
    def _sign(payload, msg_id=None, secret=WEBHOOK_SECRET):
        msg_id = msg_id or f"msg_{uuid.uuid4().hex}"
        body = payload if isinstance(payload, str) else json.dumps(payload)
        timestamp = datetime.now(timezone.utc)
        signature = Webhook(secret).sign(msg_id, timestamp, body)
        headers = {
            "svix-id": msg_id,
            "svix-timestamp": str(int(timestamp.timestamp())),
            "svix-signature": signature,
            "Content-Type": "application/json",
        }
        return body, headers
    return _sign
