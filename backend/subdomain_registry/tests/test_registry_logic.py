"""
Tests for the pure registry decisions.

Covers:
- Name format validation and availability precedence
- Freeze/unfreeze idempotence
- Collaborator invite/activate/remove
- Role resolution
- Claim ordering and LIFO release selection
"""

import pytest

from subdomain_registry.models.registry import (
    AccessRole,
    Collaborator,
    CollaboratorStatus,
    SubdomainRecord,
    SubdomainStatus,
    UserIndex,
    parse_timestamp,
)
from subdomain_registry.services import registry_logic
from subdomain_registry.services.registry_logic import (
    check_availability,
    order_claims,
    select_lifo_release,
    validate_name_format,
)


def make_record(name, owner_id="user_a", claimed_at="2025-01-01T00:00:00Z", **fields):
    return SubdomainRecord(name=name, owner_id=owner_id, claimed_at=claimed_at, **fields)


# =============================================================================
# Name format
# =============================================================================

class TestValidateNameFormat:
    """Shape checks on subdomain names."""

    @pytest.mark.parametrize("name", ["abc", "acme", "my-app", "a1b", "x" * 63])
    def test_valid_names(self, name):
        assert validate_name_format(name) is None

    def test_too_short(self):
        assert validate_name_format("ab") == registry_logic.REASON_TOO_SHORT

    def test_too_long(self):
        assert validate_name_format("x" * 64) == registry_logic.REASON_TOO_LONG

    @pytest.mark.parametrize("name", ["-abc", "abc-", "ab_c", "a.bc", "ab c"])
    def test_invalid_format(self, name):
        assert validate_name_format(name) == registry_logic.REASON_INVALID_FORMAT

    def test_uppercase_is_normalized(self):
        assert validate_name_format("  ACME ") is None


# =============================================================================
# Availability
# =============================================================================

class TestCheckAvailability:
    """Availability precedence: reserved > preallocated > claimed > format."""

    def test_available(self):
        result = check_availability("acme", None, ["admin"], {})
        assert result.available is True
        assert result.reason is None

    def test_reserved(self):
        result = check_availability("admin", None, ["admin"], {})
        assert result.available is False
        assert result.reason == "reserved"

    def test_preallocated_reports_owner(self):
        result = check_availability("vip", None, [], {"vip": "user_vip"})
        assert result.reason == "preallocated"
        assert result.owner_id == "user_vip"

    def test_claimed_reports_owner(self):
        result = check_availability("acme", make_record("acme", "user_a"), [], {})
        assert result.reason == "claimed"
        assert result.owner_id == "user_a"

    def test_reserved_beats_claimed(self):
        result = check_availability("admin", make_record("admin"), ["admin"], {})
        assert result.reason == "reserved"

    def test_preallocated_beats_claimed(self):
        result = check_availability(
            "vip", make_record("vip", "user_a"), [], {"vip": "user_vip"}
        )
        assert result.reason == "preallocated"
        assert result.owner_id == "user_vip"

    def test_reserved_short_name_reports_reserved(self):
        result = check_availability("ab", None, ["ab"], {})
        assert result.reason == "reserved"

    def test_format_checked_last(self):
        result = check_availability("a_b_c", None, [], {})
        assert result.reason == "invalid_format"

    def test_to_dict_uses_camel_case(self):
        result = check_availability("acme", make_record("acme", "user_a"), [], {})
        assert result.to_dict() == {"available": False, "reason": "claimed", "ownerId": "user_a"}


# =============================================================================
# Freeze / unfreeze
# =============================================================================

class TestFreezeUnfreeze:
    """Freeze state transitions."""

    def test_freeze_sets_status_and_timestamp(self):
        frozen = registry_logic.freeze_record(make_record("acme"))
        assert frozen.status == SubdomainStatus.FROZEN
        assert frozen.frozen_at is not None

    def test_freeze_twice_keeps_first_timestamp(self):
        frozen = registry_logic.freeze_record(make_record("acme"))
        again = registry_logic.freeze_record(frozen)
        assert again is frozen
        assert again.frozen_at == frozen.frozen_at

    def test_unfreeze_clears_timestamp(self):
        frozen = registry_logic.freeze_record(make_record("acme"))
        active = registry_logic.unfreeze_record(frozen)
        assert active.status == SubdomainStatus.ACTIVE
        assert active.frozen_at is None

    def test_unfreeze_active_is_noop(self):
        record = make_record("acme")
        assert registry_logic.unfreeze_record(record) is record

    def test_freeze_preserves_collaborators(self):
        record = registry_logic.add_collaborator(make_record("acme"), "bob@example.com")
        frozen = registry_logic.freeze_record(record)
        assert [c.email for c in frozen.collaborators] == ["bob@example.com"]


# =============================================================================
# Collaborators
# =============================================================================

class TestCollaborators:
    """Invite, activate and remove."""

    def test_add_collaborator_normalizes_email(self):
        record = registry_logic.add_collaborator(make_record("acme"), "  Bob@Example.COM ")
        assert record.collaborators[0].email == "bob@example.com"
        assert record.collaborators[0].status == CollaboratorStatus.INVITED

    def test_add_collaborator_is_idempotent(self):
        record = registry_logic.add_collaborator(make_record("acme"), "bob@example.com")
        again = registry_logic.add_collaborator(record, "BOB@example.com")
        assert again is record
        assert len(again.collaborators) == 1

    def test_activate_binds_user(self):
        record = registry_logic.add_collaborator(make_record("acme"), "bob@example.com")
        activated = registry_logic.activate_collaborator(record, "bob@example.com", "user_bob")
        collaborator = activated.collaborators[0]
        assert collaborator.status == CollaboratorStatus.ACTIVE
        assert collaborator.user_id == "user_bob"
        assert collaborator.joined_at is not None

    def test_activate_does_not_touch_other_entries(self):
        record = registry_logic.add_collaborator(make_record("acme"), "bob@example.com")
        record = registry_logic.add_collaborator(record, "carol@example.com")
        activated = registry_logic.activate_collaborator(record, "bob@example.com", "user_bob")
        assert activated.collaborators[1].status == CollaboratorStatus.INVITED


# =============================================================================
# Access resolution
# =============================================================================

class TestResolveAccess:
    """Role resolution on an existing record."""

    @pytest.fixture
    def record(self):
        return make_record(
            "acme",
            "user_owner",
            collaborators=[
                Collaborator(email="bob@example.com", user_id="user_bob", status=CollaboratorStatus.ACTIVE),
                Collaborator(email="carol@example.com", status=CollaboratorStatus.INVITED),
            ],
        )

    def test_owner(self, record):
        assert registry_logic.resolve_access(record, "user_owner").role == AccessRole.OWNER

    def test_active_collaborator(self, record):
        assert registry_logic.resolve_access(record, "user_bob").role == AccessRole.COLLABORATOR

    def test_invited_by_email(self, record):
        access = registry_logic.resolve_access(record, "user_carol", "Carol@Example.com")
        assert access.role == AccessRole.INVITED

    def test_stranger(self, record):
        assert registry_logic.resolve_access(record, "user_x", "x@example.com").role == AccessRole.NONE

    def test_anonymous(self, record):
        assert registry_logic.resolve_access(record, None).role == AccessRole.NONE

    def test_frozen_flag_passes_through(self, record):
        frozen = registry_logic.freeze_record(record)
        access = registry_logic.resolve_access(frozen, "user_bob")
        assert access.role == AccessRole.COLLABORATOR
        assert access.frozen is True
        assert access.has_access is True


# =============================================================================
# Ordering and LIFO release
# =============================================================================

class TestOrderingAndRelease:
    """Newest-first ordering and release selection."""

    def test_order_claims_newest_first(self):
        records = [
            make_record("old", claimed_at="2025-01-01T00:00:00Z"),
            make_record("new", claimed_at="2025-03-01T00:00:00Z"),
            make_record("mid", claimed_at="2025-02-01T00:00:00Z"),
        ]
        assert [r.name for r in order_claims(records)] == ["new", "mid", "old"]

    def test_order_claims_ties_broken_by_name(self):
        records = [
            make_record("alpha", claimed_at="2025-01-01T00:00:00Z"),
            make_record("beta", claimed_at="2025-01-01T00:00:00Z"),
        ]
        assert [r.name for r in order_claims(records)] == ["beta", "alpha"]

    def test_legacy_date_only_timestamps_sort(self):
        records = [
            make_record("legacy", claimed_at="2024-06-01"),
            make_record("modern", claimed_at="2025-01-01T00:00:00Z"),
        ]
        assert [r.name for r in order_claims(records)] == ["modern", "legacy"]

    def test_unparseable_timestamp_sorts_oldest(self):
        assert parse_timestamp("not-a-date") < parse_timestamp("1970-01-01")

    def test_release_newest_beyond_quota(self):
        result = select_lifo_release(["c", "b", "a"], 1)
        assert result.released == ["c", "b"]
        assert result.retained == ["a"]

    def test_release_nothing_within_quota(self):
        result = select_lifo_release(["b", "a"], 2)
        assert result.released == []

    def test_unlimited_quota_releases_nothing(self):
        assert select_lifo_release(["b", "a"], None).released == []

    def test_zero_quota_releases_all(self):
        assert select_lifo_release(["b", "a"], 0).released == ["b", "a"]

    def test_negative_quota_releases_all(self):
        assert select_lifo_release(["a"], -1).released == ["a"]


# =============================================================================
# Stored shapes
# =============================================================================

class TestStoredShapes:
    """camelCase storage and legacy record defaults."""

    def test_record_to_store_is_camel_case(self):
        data = make_record("acme", "user_a").to_store()
        assert data["ownerId"] == "user_a"
        assert data["claimedAt"] == "2025-01-01T00:00:00Z"
        assert data["status"] == "active"
        assert "frozenAt" not in data

    def test_legacy_record_defaults(self):
        record = SubdomainRecord.model_validate({"ownerId": "user_a", "claimedAt": "2024-01-01"})
        assert record.status == SubdomainStatus.ACTIVE
        assert record.collaborators == []

    def test_pre_split_user_index_is_incomplete(self):
        index = UserIndex.from_store({"subdomains": ["acme"], "quota": 2})
        assert index.complete is False
        assert index.quota == 2
        assert "complete" not in index.to_store()

    def test_user_index_round_trip_is_complete(self):
        index = UserIndex(owned_subdomains=["acme"])
        assert UserIndex.from_store(index.to_store()).complete is True
