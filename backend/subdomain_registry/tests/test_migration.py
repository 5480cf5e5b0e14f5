"""
Tests for legacy blob migration.

Covers:
- K legacy claims become K records plus user indexes
- Quotas, reserved and preallocated are carried over
- A second run is a no-op; existing records are never overwritten
- Malformed blobs raise StoreFailureError
- Middleware runs the migration before routing and fails closed
"""

import pytest

from subdomain_registry.errors import StoreFailureError
from subdomain_registry.services.legacy_migration import LegacyBlobMigrator
from subdomain_registry.storage.registry_repository import LEGACY_REGISTRY_KEY


@pytest.fixture
def legacy_blob():
    return {
        "claims": {
            "acme": {"userId": "user_a", "claimedAt": "2024-01-01"},
            "beta": {"userId": "user_a", "claimedAt": "2024-02-01"},
            "gamma": {"userId": "user_b", "claimedAt": "2024-03-01T10:00:00Z"},
        },
        "reserved": ["admin", "billing"],
        "preallocated": {"vip": "user_vip"},
        "quotas": {"user_a": 2, "user_c": 5},
    }


@pytest.fixture
def migrator(repository):
    return LegacyBlobMigrator(repository)


# =============================================================================
# Migrator
# =============================================================================

class TestLegacyBlobMigrator:
    """Blob decomposition."""

    def test_nothing_to_migrate(self, migrator):
        assert migrator.needs_migration() is False
        assert migrator.migrate().migrated is False

    def test_each_claim_becomes_a_record(self, migrator, repository, store, legacy_blob):
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        result = migrator.migrate()

        assert result.migrated is True
        assert sorted(result.records_written) == ["acme", "beta", "gamma"]
        records = repository.list_subdomains()
        assert sorted(records) == ["acme", "beta", "gamma"]
        assert records["acme"].owner_id == "user_a"
        assert records["acme"].claimed_at == "2024-01-01"
        assert records["gamma"].collaborators == []
        assert not records["gamma"].is_frozen

    def test_user_indexes_and_quotas(self, migrator, repository, store, legacy_blob):
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        migrator.migrate()

        index_a = repository.get_user_index("user_a")
        assert sorted(index_a.owned_subdomains) == ["acme", "beta"]
        assert index_a.quota == 2
        assert repository.get_user_index("user_b").owned_subdomains == ["gamma"]
        # Quota-only users still get an index
        assert repository.get_user_index("user_c").quota == 5

    def test_pre_split_index_keeps_its_entries(self, migrator, repository, store, legacy_blob, seed_claim):
        seed_claim("delta", "user_a")
        store.put("user:user_a", {"subdomains": ["delta"], "quota": 4})
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        migrator.migrate()

        index_a = repository.get_user_index("user_a")
        assert index_a.complete is True
        assert sorted(index_a.owned_subdomains) == ["acme", "beta", "delta"]
        assert index_a.quota == 4

    def test_config_carried_over(self, migrator, repository, store, legacy_blob):
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        migrator.migrate()

        assert repository.get_reserved() == ["admin", "billing"]
        assert repository.get_preallocated() == {"vip": "user_vip"}

    def test_stored_config_not_overwritten(self, migrator, repository, store, legacy_blob):
        repository.put_reserved(["www"])
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        migrator.migrate()

        assert repository.get_reserved() == ["www"]

    def test_blob_deleted_and_second_run_is_noop(self, migrator, store, legacy_blob):
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)
        migrator.migrate()

        assert store.get(LEGACY_REGISTRY_KEY) is None
        assert migrator.migrate().migrated is False

    def test_existing_record_not_overwritten(self, migrator, repository, store, legacy_blob, seed_claim):
        seed_claim("acme", "user_new", claimed_at="2025-05-01T00:00:00Z")
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        result = migrator.migrate()

        assert result.records_skipped == ["acme"]
        assert repository.get_subdomain("acme").owner_id == "user_new"

    def test_concurrent_rerun_with_blob_present_loses_nothing(self, migrator, repository, store, legacy_blob):
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)
        migrator.migrate()
        # A second node that read the blob before the delete
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        result = migrator.migrate()

        assert sorted(result.records_skipped) == ["acme", "beta", "gamma"]
        assert len(repository.list_subdomains()) == 3
        assert sorted(repository.get_user_index("user_a").owned_subdomains) == ["acme", "beta"]

    def test_malformed_blob(self, migrator, store):
        store.put(LEGACY_REGISTRY_KEY, ["not", "a", "registry"])
        with pytest.raises(StoreFailureError):
            migrator.migrate()

    def test_blob_with_invalid_claim(self, migrator, store):
        store.put(LEGACY_REGISTRY_KEY, {"claims": {"acme": {"claimedAt": "2024-01-01"}}})
        with pytest.raises(StoreFailureError):
            migrator.migrate()


# =============================================================================
# Middleware
# =============================================================================

class TestLegacyMigrationMiddleware:
    """Migration before routing."""

    def test_first_request_migrates(self, client, store, legacy_blob):
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        response = client.get("/check/acme")

        assert response.status_code == 200
        assert response.json() == {"available": False, "reason": "claimed", "ownerId": "user_a"}
        assert store.get(LEGACY_REGISTRY_KEY) is None

    def test_health_skips_migration(self, client, store, legacy_blob):
        store.put(LEGACY_REGISTRY_KEY, legacy_blob)

        assert client.get("/health").status_code == 200
        assert store.get(LEGACY_REGISTRY_KEY) is not None

    def test_migration_failure_returns_opaque_500(self, client, store):
        store.put(LEGACY_REGISTRY_KEY, "garbage")

        response = client.get("/registry.json")

        assert response.status_code == 500
        assert response.json() == {
            "error": "Internal server error",
            "detail": "An unexpected error occurred",
        }
