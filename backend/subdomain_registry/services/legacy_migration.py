"""
Legacy blob migration.

The previous storage generation kept the whole registry in one value under
the ``registry`` key:

    {"claims": {name: {"userId", "claimedAt"}},
     "reserved": [...], "preallocated": {...}, "quotas": {userId: n}}

LegacyBlobMigrator decomposes it into per-subdomain records, user indexes
and config keys, then deletes the blob. Concurrent runs each read the
still-present blob; a record that already exists is never overwritten, so
duplicate runs lose no claim data.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from pydantic import ValidationError

from subdomain_registry.errors import StoreFailureError
from subdomain_registry.models.registry import (
    LegacyRegistry,
    SubdomainRecord,
    SubdomainStatus,
    UserIndex,
    normalize_name,
)
from subdomain_registry.storage.registry_repository import RegistryRepository

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Outcome of one migration run."""
    migrated: bool
    records_written: List[str] = field(default_factory=list)
    records_skipped: List[str] = field(default_factory=list)
    users_updated: List[str] = field(default_factory=list)


class LegacyBlobMigrator:
    """Moves the legacy single-blob registry into per-key records."""

    def __init__(self, repository: RegistryRepository):
        self.repository = repository

    def needs_migration(self) -> bool:
        return self.repository.get_legacy_blob() is not None

    def _parse_blob(self, blob) -> LegacyRegistry:
        if not isinstance(blob, dict):
            raise StoreFailureError("Legacy registry blob is not a JSON object")
        try:
            return LegacyRegistry.model_validate(blob)
        except ValidationError as e:
            raise StoreFailureError(f"Legacy registry blob is malformed: {e}", cause=e)

    def migrate(self) -> MigrationResult:
        """
        Run the migration if the legacy key is present.

        Returns:
            MigrationResult; migrated is False when there was nothing to do
        """
        blob = self.repository.get_legacy_blob()
        if blob is None:
            return MigrationResult(migrated=False)

        legacy = self._parse_blob(blob)
        result = MigrationResult(migrated=True)

        with self.repository.store.mutation():
            owned_by_user = {}
            for raw_name, claim in legacy.claims.items():
                name = normalize_name(raw_name)
                if not name:
                    continue
                owned_by_user.setdefault(claim.user_id, []).append(name)

                if self.repository.get_subdomain(name) is not None:
                    result.records_skipped.append(name)
                    continue

                record = SubdomainRecord(
                    name=name,
                    owner_id=claim.user_id,
                    claimed_at=claim.claimed_at,
                    status=SubdomainStatus.ACTIVE,
                )
                self.repository.put_subdomain(record)
                result.records_written.append(name)

            for user_id in sorted(set(owned_by_user) | set(legacy.quotas)):
                index = self.repository.get_user_index(user_id)
                if index is not None and not index.complete:
                    # Pre-split {subdomains, quota} shape: start from the records
                    index = self.repository.rebuild_user_index(user_id, quota=index.quota)
                index = index or UserIndex()
                for name in owned_by_user.get(user_id, []):
                    index.add_owned(name)
                if index.quota is None and user_id in legacy.quotas:
                    index.quota = legacy.quotas[user_id]
                self.repository.put_user_index(user_id, index)
                result.users_updated.append(user_id)

            if legacy.reserved and not self.repository.has_stored_reserved():
                self.repository.put_reserved(legacy.reserved)
            if legacy.preallocated and not self.repository.has_stored_preallocated():
                self.repository.put_preallocated(legacy.preallocated)

            self.repository.delete_legacy_blob()

        logger.info(
            "Migrated legacy registry blob",
            extra={
                "records_written": len(result.records_written),
                "records_skipped": len(result.records_skipped),
                "users_updated": len(result.users_updated),
            },
        )
        return result
