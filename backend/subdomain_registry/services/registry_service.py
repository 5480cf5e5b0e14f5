"""
Subdomain registry service.

Store-aware operations over the pure decisions in registry_logic. Every
mutating operation is a read-current, compute-next, write-next sequence run
inside ``store.mutation()``; each is safe to re-run, so a retried request or
a redelivered webhook converges on the same state.

Expected business outcomes (name taken, quota reached, no invite) come back
as result objects. Only StoreFailureError propagates.
"""

import logging
from typing import Dict, List, Optional, Tuple

from subdomain_registry.models.registry import (
    AccessRight,
    AccessRole,
    CollaboratorStatus,
    SubdomainRecord,
    UserIndex,
    normalize_email,
    normalize_name,
)
from subdomain_registry.services import registry_logic
from subdomain_registry.services.quota_policy import QuotaPolicy
from subdomain_registry.services.registry_logic import (
    AccessResult,
    AvailabilityResult,
    ClaimResult,
    InviteResult,
    JoinResult,
    ReleaseResult,
)
from subdomain_registry.storage.registry_repository import RegistryRepository

logger = logging.getLogger(__name__)


class SubdomainRegistryService:
    """
    Operations on the subdomain registry.

    Usage:
        service = SubdomainRegistryService(repository, QuotaPolicy(settings))
        result = service.create_claim("acme", user_id, plan_claim="u:pro")
        if not result.success:
            ...
    """

    def __init__(self, repository: RegistryRepository, quota_policy: QuotaPolicy):
        self.repository = repository
        self.quota_policy = quota_policy

    @property
    def store(self):
        return self.repository.store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def check_availability(self, name: str) -> AvailabilityResult:
        normalized = normalize_name(name)
        return registry_logic.check_availability(
            normalized,
            self.repository.get_subdomain(normalized) if normalized else None,
            self.repository.get_reserved(),
            self.repository.get_preallocated(),
        )

    def get_user_index(self, user_id: str) -> UserIndex:
        """
        Load a user's index, rebuilding it from primary records when it is
        missing or stored in the pre-split shape.
        """
        index = self.repository.get_user_index(user_id)
        if index is not None and index.complete:
            return index

        quota = index.quota if index is not None else None
        rebuilt = self.repository.rebuild_user_index(user_id, quota=quota)
        self.repository.put_user_index(user_id, rebuilt)
        return rebuilt

    def _current_owned(self, user_id: str) -> Tuple[UserIndex, List[SubdomainRecord]]:
        """
        The user's index and owned records, newest claim first.

        Ownership comes from a scan of the primary records; the index is only
        a cache of it. Names the index missed are added back and the repaired
        index is written.
        """
        index = self.get_user_index(user_id)
        owned = self.repository.list_owned_subdomains(user_id)
        missing = sorted(set(owned) - set(index.owned_subdomains))
        if missing:
            logger.warning(
                "User index missing owned subdomains, repairing",
                extra={"user_id": user_id, "subdomains": missing},
            )
            for name in missing:
                index.add_owned(name)
            self.repository.put_user_index(user_id, index)
        return index, registry_logic.order_claims(list(owned.values()))

    def get_user_claims(self, user_id: str) -> List[str]:
        """Names owned by user_id, newest claim first."""
        _, owned = self._current_owned(user_id)
        return [r.name for r in owned]

    def get_record(self, name: str) -> Optional[SubdomainRecord]:
        return self.repository.get_subdomain(name)

    def resolve(self, name: str, user_id: Optional[str], email: Optional[str]) -> AccessResult:
        """Resolve a requester's role; unclaimed when no record exists."""
        record = self.repository.get_subdomain(name)
        if record is None:
            return AccessResult(role=AccessRole.UNCLAIMED, frozen=False)
        return registry_logic.resolve_access(record, user_id, email)

    def access_summary(self, user_id: str) -> Dict[str, Dict[str, object]]:
        """
        Role/frozen map of every subdomain the user owns or collaborates on,
        in the shape pushed to identity metadata.
        """
        index = self.get_user_index(user_id)
        summary: Dict[str, Dict[str, object]] = {}
        for name in [*index.owned_subdomains, *index.collaborating_subdomains]:
            record = self.repository.get_subdomain(name)
            if record is None:
                continue
            access = registry_logic.resolve_access(record, user_id)
            if access.has_access:
                summary[name] = access.to_dict()
        return summary

    def read_snapshot(self) -> Dict[str, object]:
        return self.repository.read_snapshot()

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def create_claim(
        self,
        name: str,
        owner_id: str,
        plan_claim: Optional[str] = None,
    ) -> ClaimResult:
        """
        Claim a name for owner_id.

        Re-claiming a name the caller already owns succeeds without changes.

        Args:
            name: Requested subdomain
            owner_id: Claiming user
            plan_claim: Raw ``pla`` token claim, used for plan quotas

        Returns:
            ClaimResult with error not_available, no_subscription or
            quota_exceeded on failure
        """
        normalized = normalize_name(name)

        with self.store.mutation():
            existing = self.repository.get_subdomain(normalized)
            if existing is not None and existing.owner_id == owner_id:
                return ClaimResult(success=True, subdomain=normalized, already_owned=True)

            availability = registry_logic.check_availability(
                normalized,
                existing,
                self.repository.get_reserved(),
                self.repository.get_preallocated(),
            )
            if not availability.available:
                return ClaimResult(
                    success=False,
                    subdomain=normalized,
                    error=registry_logic.ERROR_NOT_AVAILABLE,
                    reason=availability.reason,
                    owner_id=availability.owner_id,
                )

            if self.quota_policy.requires_subscription(owner_id, plan_claim):
                return ClaimResult(
                    success=False,
                    subdomain=normalized,
                    error=registry_logic.ERROR_NO_SUBSCRIPTION,
                )

            index, owned = self._current_owned(owner_id)
            current = len(owned)
            quota = self.quota_policy.effective_quota(owner_id, index.quota, plan_claim)
            if quota is not None and current >= quota:
                logger.info(
                    "Claim rejected, quota reached",
                    extra={"user_id": owner_id, "current": current, "quota": quota},
                )
                return ClaimResult(
                    success=False,
                    subdomain=normalized,
                    error=registry_logic.ERROR_QUOTA_EXCEEDED,
                    current=current,
                    quota=quota,
                )

            record = registry_logic.create_subdomain_record(normalized, owner_id)
            self.repository.put_subdomain(record)
            index.add_owned(normalized)
            self.repository.put_user_index(owner_id, index)

        logger.info("Subdomain claimed", extra={"subdomain": normalized, "user_id": owner_id})
        return ClaimResult(success=True, subdomain=normalized)

    def release_excess_claims(self, user_id: str, new_quota: Optional[int]) -> ReleaseResult:
        """
        Delete the newest claims beyond new_quota, keeping the oldest.

        Released names are dropped from the owner's index and from the
        indexes of any active collaborators.
        """
        with self.store.mutation():
            index, ordered = self._current_owned(user_id)
            result = registry_logic.select_lifo_release([r.name for r in ordered], new_quota)
            if not result.released:
                return result

            by_name = {r.name: r for r in ordered}
            for name in result.released:
                record = by_name[name]
                collaborator_ids = record.active_collaborator_ids()
                self.repository.delete_subdomain(name)
                index.remove_owned(name)
                self._drop_collaborating(collaborator_ids, name)
                logger.warning(
                    "Released subdomain over quota",
                    extra={
                        "subdomain": name,
                        "user_id": user_id,
                        "quota": new_quota,
                        "collaborators": len(collaborator_ids),
                    },
                )
            self.repository.put_user_index(user_id, index)

        return result

    def _drop_collaborating(self, user_ids: List[str], name: str) -> None:
        for collaborator_id in user_ids:
            index = self.repository.get_user_index(collaborator_id)
            if index is None or name not in index.collaborating_subdomains:
                continue
            index.remove_collaborating(name)
            self.repository.put_user_index(collaborator_id, index)

    # ------------------------------------------------------------------
    # Billing state
    # ------------------------------------------------------------------

    def freeze_user_subdomains(self, user_id: str) -> List[str]:
        """Freeze every record owned by user_id. Returns the names touched."""
        changed = []
        with self.store.mutation():
            _, owned = self._current_owned(user_id)
            for record in owned:
                frozen = registry_logic.freeze_record(record)
                if frozen is not record:
                    self.repository.put_subdomain(frozen)
                    changed.append(record.name)
        if changed:
            logger.info("Froze subdomains", extra={"user_id": user_id, "subdomains": changed})
        return changed

    def unfreeze_user_subdomains(self, user_id: str) -> List[str]:
        """Return every record owned by user_id to active. Returns the names touched."""
        changed = []
        with self.store.mutation():
            _, owned = self._current_owned(user_id)
            for record in owned:
                active = registry_logic.unfreeze_record(record)
                if active is not record:
                    self.repository.put_subdomain(active)
                    changed.append(record.name)
        if changed:
            logger.info("Unfroze subdomains", extra={"user_id": user_id, "subdomains": changed})
        return changed

    def set_quota(self, user_id: str, quota: Optional[int]) -> UserIndex:
        """Store a quota on the user's index. None clears it."""
        with self.store.mutation():
            index = self.get_user_index(user_id)
            index.quota = quota
            self.repository.put_user_index(user_id, index)
        logger.info("Quota updated", extra={"user_id": user_id, "quota": quota})
        return index

    # ------------------------------------------------------------------
    # Collaboration
    # ------------------------------------------------------------------

    def invite_collaborator(
        self,
        name: str,
        caller_id: str,
        email: str,
        right: AccessRight = AccessRight.WRITE,
    ) -> InviteResult:
        normalized = normalize_name(name)
        with self.store.mutation():
            record = self.repository.get_subdomain(normalized)
            if record is None:
                return InviteResult(
                    success=False, subdomain=normalized, error=registry_logic.ERROR_NOT_FOUND
                )
            if record.owner_id != caller_id:
                return InviteResult(
                    success=False, subdomain=normalized, error=registry_logic.ERROR_NOT_OWNER
                )

            existing = record.find_collaborator(email)
            if existing is not None:
                if existing.status == CollaboratorStatus.ACTIVE:
                    return InviteResult(
                        success=False,
                        subdomain=normalized,
                        error=registry_logic.ERROR_ALREADY_ACTIVE,
                    )
                return InviteResult(success=True, subdomain=normalized, already_invited=True)

            self.repository.put_subdomain(registry_logic.add_collaborator(record, email, right))

        logger.info(
            "Collaborator invited",
            extra={"subdomain": normalized, "owner_id": caller_id},
        )
        return InviteResult(success=True, subdomain=normalized)

    def join_invite(self, name: str, email: str, user_id: str) -> JoinResult:
        normalized = normalize_name(name)
        normalized_email = normalize_email(email)
        with self.store.mutation():
            record = self.repository.get_subdomain(normalized)
            if record is None:
                return JoinResult(
                    success=False, subdomain=normalized, error=registry_logic.ERROR_NOT_FOUND
                )

            collaborator = record.find_collaborator(normalized_email)
            if collaborator is None or collaborator.status != CollaboratorStatus.INVITED:
                return JoinResult(
                    success=False,
                    subdomain=normalized,
                    error=registry_logic.ERROR_NO_INVITE_FOUND,
                )

            updated = registry_logic.activate_collaborator(record, normalized_email, user_id)
            self.repository.put_subdomain(updated)

            index = self.get_user_index(user_id)
            index.add_collaborating(normalized)
            self.repository.put_user_index(user_id, index)

        logger.info("Collaborator joined", extra={"subdomain": normalized, "user_id": user_id})
        return JoinResult(success=True, subdomain=normalized, record=updated)
