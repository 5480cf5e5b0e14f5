"""
Quota policy - how many subdomains a user may own.

Resolution order:
1. Admin users (ADMIN_USER_IDS) are unlimited
2. A quota assigned by a billing webhook (UserIndex.quota)
3. The plan in the token's ``pla`` claim, looked up in the stored plan
   quotas (config:plan_quotas), falling back to PLAN_QUOTAS
4. Otherwise unlimited, so deployments without billing keep working

None means unlimited throughout.
"""

import logging
from typing import Optional

from subdomain_registry.config.settings import RegistrySettings
from subdomain_registry.storage.registry_repository import RegistryRepository

logger = logging.getLogger(__name__)

FREE_PLAN_SLUG = "free"


class QuotaPolicy:
    """Resolves quotas and subscription state from settings and token claims."""

    def __init__(self, settings: RegistrySettings, repository: Optional[RegistryRepository] = None):
        self.settings = settings
        self.repository = repository

    @staticmethod
    def plan_slug(plan_claim: Optional[str]) -> Optional[str]:
        """
        Extract the plan slug from a ``pla`` claim.

        Clerk encodes the plan as ``<scope>:<slug>`` (``u:pro`` for a user
        plan). A bare slug is accepted as-is.
        """
        if not plan_claim:
            return None
        _, _, slug = plan_claim.partition(":")
        slug = (slug or plan_claim).strip()
        return slug or None

    def quota_for_plan(self, slug: Optional[str]) -> Optional[int]:
        if not slug:
            return None
        stored = self.repository.get_plan_quotas() if self.repository is not None else None
        if stored is not None:
            return stored.get(slug)
        return self.settings.plan_quotas.get(slug)

    def is_admin(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id in self.settings.admin_user_ids

    def has_active_subscription(self, plan_claim: Optional[str]) -> bool:
        slug = self.plan_slug(plan_claim)
        return bool(slug) and slug != FREE_PLAN_SLUG

    def requires_subscription(self, user_id: str, plan_claim: Optional[str]) -> bool:
        """True when billing is enforced and the caller is neither admin nor paid."""
        if not self.settings.billing_required or self.is_admin(user_id):
            return False
        return not self.has_active_subscription(plan_claim)

    def effective_quota(
        self,
        user_id: str,
        assigned_quota: Optional[int] = None,
        plan_claim: Optional[str] = None,
    ) -> Optional[int]:
        """
        Get the quota that applies to a user right now.

        Args:
            user_id: Caller's user id
            assigned_quota: Quota stored on the user's index, if any
            plan_claim: Raw ``pla`` claim from the caller's token

        Returns:
            Maximum owned subdomains, or None for unlimited
        """
        if self.is_admin(user_id):
            return None
        if assigned_quota is not None:
            return assigned_quota
        return self.quota_for_plan(self.plan_slug(plan_claim))
