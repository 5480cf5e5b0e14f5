"""
Registry repository - typed access to registry records in a RecordStore.

Key layout:
    subdomain:<name>      SubdomainRecord
    user:<user_id>        UserIndex (derived, rebuildable)
    config:reserved       list of reserved names
    config:preallocated   map of name -> owner user id
    config:plan_quotas    map of plan slug -> quota
    webhook:<event_id>    processed webhook ledger entry
    registry              legacy single-blob registry (migrated away)
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from subdomain_registry.errors import StoreFailureError
from subdomain_registry.models.registry import (
    CollaboratorStatus,
    SubdomainRecord,
    UserIndex,
    normalize_name,
    utc_now_iso,
)
from subdomain_registry.storage.record_store import RecordStore

logger = logging.getLogger(__name__)

SUBDOMAIN_PREFIX = "subdomain:"
USER_PREFIX = "user:"
WEBHOOK_PREFIX = "webhook:"
RESERVED_KEY = "config:reserved"
PREALLOCATED_KEY = "config:preallocated"
PLAN_QUOTAS_KEY = "config:plan_quotas"
LEGACY_REGISTRY_KEY = "registry"


class RegistryRepository:
    """
    Typed wrapper around a RecordStore.

    Reserved names fall back to the RESERVED_SUBDOMAINS list when the store
    has none configured.
    """

    def __init__(self, store: RecordStore, fallback_reserved: Optional[List[str]] = None):
        self.store = store
        self._fallback_reserved = [normalize_name(n) for n in (fallback_reserved or [])]

    # ------------------------------------------------------------------
    # Subdomain records
    # ------------------------------------------------------------------

    def _parse_record(self, name: str, data: Any) -> SubdomainRecord:
        if not isinstance(data, dict):
            raise StoreFailureError(f"Malformed subdomain record for {name}")
        try:
            record = SubdomainRecord.model_validate(data)
        except ValidationError as e:
            raise StoreFailureError(f"Malformed subdomain record for {name}: {e}", cause=e)
        if not record.name:
            record.name = name
        return record

    def get_subdomain(self, name: str) -> Optional[SubdomainRecord]:
        normalized = normalize_name(name)
        data = self.store.get(f"{SUBDOMAIN_PREFIX}{normalized}")
        if data is None:
            return None
        return self._parse_record(normalized, data)

    def put_subdomain(self, record: SubdomainRecord) -> None:
        name = normalize_name(record.name)
        if not name:
            raise ValueError("Cannot store a subdomain record without a name")
        self.store.put(f"{SUBDOMAIN_PREFIX}{name}", record.to_store())

    def delete_subdomain(self, name: str) -> None:
        self.store.delete(f"{SUBDOMAIN_PREFIX}{normalize_name(name)}")

    def list_subdomains(self) -> Dict[str, SubdomainRecord]:
        records: Dict[str, SubdomainRecord] = {}
        for key, data in self.store.list_by_prefix(SUBDOMAIN_PREFIX).items():
            name = key[len(SUBDOMAIN_PREFIX):]
            records[name] = self._parse_record(name, data)
        return records

    # ------------------------------------------------------------------
    # User index
    # ------------------------------------------------------------------

    def get_user_index(self, user_id: str) -> Optional[UserIndex]:
        data = self.store.get(f"{USER_PREFIX}{user_id}")
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed user index", extra={"user_id": user_id})
            return None
        try:
            return UserIndex.from_store(data)
        except ValidationError:
            logger.warning("Ignoring malformed user index", extra={"user_id": user_id})
            return None

    def put_user_index(self, user_id: str, index: UserIndex) -> None:
        self.store.put(f"{USER_PREFIX}{user_id}", index.to_store())

    def delete_user_index(self, user_id: str) -> None:
        self.store.delete(f"{USER_PREFIX}{user_id}")

    def list_owned_subdomains(self, user_id: str) -> Dict[str, SubdomainRecord]:
        """Records owned by user_id, found by prefix scan rather than the index."""
        return {
            name: record
            for name, record in self.list_subdomains().items()
            if record.owner_id == user_id
        }

    def rebuild_user_index(self, user_id: str, quota: Optional[int] = None) -> UserIndex:
        """
        Recreate a user's index from a scan of the primary records.

        Args:
            user_id: User to rebuild for
            quota: Quota to carry over (the scan cannot recover it)

        Returns:
            The rebuilt index (not persisted)
        """
        index = UserIndex(quota=quota)
        for name, record in self.list_subdomains().items():
            if record.owner_id == user_id:
                index.add_owned(name)
            elif any(
                c.user_id == user_id and c.status == CollaboratorStatus.ACTIVE
                for c in record.collaborators
            ):
                index.add_collaborating(name)
        index.owned_subdomains.sort()
        index.collaborating_subdomains.sort()
        logger.info(
            "Rebuilt user index from subdomain records",
            extra={
                "user_id": user_id,
                "owned": len(index.owned_subdomains),
                "collaborating": len(index.collaborating_subdomains),
            },
        )
        return index

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_reserved(self) -> List[str]:
        stored = self.store.get(RESERVED_KEY)
        if isinstance(stored, list) and stored:
            return [normalize_name(n) for n in stored]
        return list(self._fallback_reserved)

    def has_stored_reserved(self) -> bool:
        """True when the store holds its own reserved list (no env fallback)."""
        return bool(self.store.get(RESERVED_KEY))

    def put_reserved(self, names: List[str]) -> None:
        self.store.put(RESERVED_KEY, sorted({normalize_name(n) for n in names if n}))

    def get_preallocated(self) -> Dict[str, str]:
        stored = self.store.get(PREALLOCATED_KEY)
        if isinstance(stored, dict):
            return {normalize_name(k): v for k, v in stored.items()}
        return {}

    def has_stored_preallocated(self) -> bool:
        return bool(self.store.get(PREALLOCATED_KEY))

    def put_preallocated(self, preallocated: Dict[str, str]) -> None:
        self.store.put(
            PREALLOCATED_KEY,
            {normalize_name(k): v for k, v in preallocated.items() if k},
        )

    def get_plan_quotas(self) -> Optional[Dict[str, int]]:
        """Stored plan quotas, or None when the store has none configured."""
        stored = self.store.get(PLAN_QUOTAS_KEY)
        if not isinstance(stored, dict) or not stored:
            return None
        return {
            str(plan): quota
            for plan, quota in stored.items()
            if isinstance(quota, int) and not isinstance(quota, bool)
        }

    def has_stored_plan_quotas(self) -> bool:
        return bool(self.store.get(PLAN_QUOTAS_KEY))

    def put_plan_quotas(self, plan_quotas: Dict[str, int]) -> None:
        self.store.put(PLAN_QUOTAS_KEY, dict(plan_quotas))

    # ------------------------------------------------------------------
    # Webhook ledger
    # ------------------------------------------------------------------

    def get_processed_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get(f"{WEBHOOK_PREFIX}{event_id}")

    def record_processed_event(self, event_id: str, event_type: str, user_id: Optional[str]) -> None:
        self.store.put(
            f"{WEBHOOK_PREFIX}{event_id}",
            {"type": event_type, "userId": user_id, "processedAt": utc_now_iso()},
        )

    # ------------------------------------------------------------------
    # Legacy blob
    # ------------------------------------------------------------------

    def get_legacy_blob(self) -> Optional[Any]:
        return self.store.get(LEGACY_REGISTRY_KEY)

    def delete_legacy_blob(self) -> None:
        self.store.delete(LEGACY_REGISTRY_KEY)

    # ------------------------------------------------------------------
    # Aggregate snapshot
    # ------------------------------------------------------------------

    def read_snapshot(self) -> Dict[str, Any]:
        """
        Reconstruct the public aggregate registry via prefix scan.

        Shape: {claims: {name: {userId, claimedAt, collaborators}},
                reserved: [name], preallocated: {name: userId}}
        """
        claims = {
            name: {
                "userId": record.owner_id,
                "claimedAt": record.claimed_at,
                "collaborators": [c.to_store() for c in record.collaborators],
            }
            for name, record in self.list_subdomains().items()
        }
        return {
            "claims": claims,
            "reserved": self.get_reserved(),
            "preallocated": self.get_preallocated(),
        }
