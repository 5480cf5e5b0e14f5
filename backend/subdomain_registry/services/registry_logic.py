"""
Registry Logic - pure functions for subdomain registry decisions.

Nothing in this module touches the record store. Each function takes the
current state and returns the next state or a decision, so the store-aware
service can run them inside a read-compute-write sequence and re-run them
safely after a retry.

Covers:
- Availability checking with reserved > preallocated > claimed precedence
- Record creation, freeze and unfreeze
- Collaborator invite/activate/remove
- Access-role resolution
- Claim ordering and LIFO release selection
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from subdomain_registry.models.registry import (
    AccessRight,
    AccessRole,
    Collaborator,
    CollaboratorStatus,
    SubdomainRecord,
    SubdomainStatus,
    normalize_email,
    normalize_name,
    utc_now_iso,
)

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 63
NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")

# Availability reasons
REASON_RESERVED = "reserved"
REASON_PREALLOCATED = "preallocated"
REASON_CLAIMED = "claimed"
REASON_TOO_SHORT = "too_short"
REASON_TOO_LONG = "too_long"
REASON_INVALID_FORMAT = "invalid_format"

# Operation errors
ERROR_NOT_AVAILABLE = "not_available"
ERROR_QUOTA_EXCEEDED = "quota_exceeded"
ERROR_NO_SUBSCRIPTION = "no_subscription"
ERROR_NOT_FOUND = "not_found"
ERROR_NOT_OWNER = "not_owner"
ERROR_ALREADY_ACTIVE = "already_active"
ERROR_NO_INVITE_FOUND = "no_invite_found"


@dataclass
class AvailabilityResult:
    """Result of an availability check."""
    available: bool
    reason: Optional[str] = None
    owner_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"available": self.available}
        if self.reason:
            body["reason"] = self.reason
        if self.owner_id:
            body["ownerId"] = self.owner_id
        return body


@dataclass
class AccessResult:
    """Role and frozen status of a requester on a subdomain."""
    role: AccessRole
    frozen: bool = False

    @property
    def has_access(self) -> bool:
        return self.role in (AccessRole.OWNER, AccessRole.COLLABORATOR)

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "frozen": self.frozen}


@dataclass
class ClaimResult:
    """Outcome of create_claim."""
    success: bool
    subdomain: str
    error: Optional[str] = None
    reason: Optional[str] = None
    owner_id: Optional[str] = None
    current: Optional[int] = None
    quota: Optional[int] = None
    already_owned: bool = False


@dataclass
class InviteResult:
    """Outcome of invite_collaborator."""
    success: bool
    subdomain: str
    error: Optional[str] = None
    already_invited: bool = False


@dataclass
class JoinResult:
    """Outcome of join_invite."""
    success: bool
    subdomain: str
    error: Optional[str] = None
    record: Optional[SubdomainRecord] = None


@dataclass
class ReleaseResult:
    """Names released by release_excess_claims."""
    released: List[str] = field(default_factory=list)
    retained: List[str] = field(default_factory=list)


def validate_name_format(name: str) -> Optional[str]:
    """
    Check only the shape of a subdomain name.

    Returns:
        A format reason (too_short, too_long, invalid_format) or None if valid
    """
    normalized = normalize_name(name)
    if len(normalized) < MIN_NAME_LENGTH:
        return REASON_TOO_SHORT
    if len(normalized) > MAX_NAME_LENGTH:
        return REASON_TOO_LONG
    if not NAME_PATTERN.match(normalized):
        return REASON_INVALID_FORMAT
    return None


def check_availability(
    name: str,
    existing: Optional[SubdomainRecord],
    reserved: Iterable[str],
    preallocated: Mapping[str, str],
) -> AvailabilityResult:
    """
    Decide whether a name can be claimed.

    Precedence when several conditions apply: reserved, then preallocated,
    then claimed, then the format checks.

    Args:
        name: Requested name (normalized here)
        existing: Current record for the name, if any
        reserved: Names that can never be claimed
        preallocated: Name -> owner user id reserved ahead of signup

    Returns:
        AvailabilityResult; owner_id is set for claimed/preallocated
    """
    normalized = normalize_name(name)

    if normalized in set(reserved or ()):
        return AvailabilityResult(available=False, reason=REASON_RESERVED)

    if preallocated and normalized in preallocated:
        return AvailabilityResult(
            available=False,
            reason=REASON_PREALLOCATED,
            owner_id=preallocated[normalized],
        )

    if existing is not None:
        return AvailabilityResult(
            available=False,
            reason=REASON_CLAIMED,
            owner_id=existing.owner_id,
        )

    format_reason = validate_name_format(normalized)
    if format_reason:
        return AvailabilityResult(available=False, reason=format_reason)

    return AvailabilityResult(available=True)


def create_subdomain_record(name: str, owner_id: str) -> SubdomainRecord:
    """Build a fresh active record for a new claim."""
    return SubdomainRecord(
        name=normalize_name(name),
        owner_id=owner_id,
        claimed_at=utc_now_iso(),
        status=SubdomainStatus.ACTIVE,
        collaborators=[],
    )


def freeze_record(record: SubdomainRecord) -> SubdomainRecord:
    """Freeze a record. Already-frozen records keep their original frozen_at."""
    if record.is_frozen and record.frozen_at:
        return record
    return record.model_copy(
        update={"status": SubdomainStatus.FROZEN, "frozen_at": utc_now_iso()}
    )


def unfreeze_record(record: SubdomainRecord) -> SubdomainRecord:
    """Return a record to active, clearing frozen_at."""
    if not record.is_frozen and record.frozen_at is None:
        return record
    return record.model_copy(update={"status": SubdomainStatus.ACTIVE, "frozen_at": None})


def add_collaborator(
    record: SubdomainRecord,
    email: str,
    right: AccessRight = AccessRight.WRITE,
) -> SubdomainRecord:
    """
    Add an invited collaborator keyed by email.

    Idempotent: an existing entry for the email (invited or active) leaves the
    record unchanged.
    """
    if record.find_collaborator(email) is not None:
        return record

    collaborator = Collaborator(
        email=normalize_email(email),
        status=CollaboratorStatus.INVITED,
        right=right,
        invited_at=utc_now_iso(),
    )
    return record.model_copy(update={"collaborators": [*record.collaborators, collaborator]})


def activate_collaborator(record: SubdomainRecord, email: str, user_id: str) -> SubdomainRecord:
    """Mark the invited entry for email as active and bind it to user_id."""
    normalized = normalize_email(email)
    joined_at = utc_now_iso()
    collaborators = []
    for collaborator in record.collaborators:
        if (
            normalize_email(collaborator.email) == normalized
            and collaborator.status == CollaboratorStatus.INVITED
        ):
            collaborator = collaborator.model_copy(
                update={
                    "user_id": user_id,
                    "status": CollaboratorStatus.ACTIVE,
                    "joined_at": joined_at,
                }
            )
        collaborators.append(collaborator)
    return record.model_copy(update={"collaborators": collaborators})


def resolve_access(
    record: SubdomainRecord,
    user_id: Optional[str],
    email: Optional[str] = None,
) -> AccessResult:
    """
    Resolve a requester's role on a record.

    owner if they own it; collaborator if an active entry carries their user
    id; invited if a pending entry matches their email; otherwise none.
    """
    frozen = record.is_frozen

    if user_id and record.owner_id == user_id:
        return AccessResult(role=AccessRole.OWNER, frozen=frozen)

    if user_id:
        for collaborator in record.collaborators:
            if collaborator.user_id == user_id and collaborator.status == CollaboratorStatus.ACTIVE:
                return AccessResult(role=AccessRole.COLLABORATOR, frozen=frozen)

    if email:
        collaborator = record.find_collaborator(email)
        if collaborator is not None and collaborator.status == CollaboratorStatus.INVITED:
            return AccessResult(role=AccessRole.INVITED, frozen=frozen)

    return AccessResult(role=AccessRole.NONE, frozen=frozen)


def order_claims(records: Sequence[SubdomainRecord]) -> List[SubdomainRecord]:
    """Newest claim first; ties broken by name, descending."""
    return sorted(
        records,
        key=lambda r: (r.claimed_at_datetime, r.name),
        reverse=True,
    )


def select_lifo_release(ordered_names: Sequence[str], new_quota: Optional[int]) -> ReleaseResult:
    """
    Pick which claims to release when the allowed count drops.

    Args:
        ordered_names: Owned names, newest first (as from order_claims)
        new_quota: New allowed count; None means unlimited, <= 0 releases all

    Returns:
        ReleaseResult with the newest names released and the oldest retained
    """
    if new_quota is None:
        return ReleaseResult(released=[], retained=list(ordered_names))

    keep = max(new_quota, 0)
    excess = len(ordered_names) - keep
    if excess <= 0:
        return ReleaseResult(released=[], retained=list(ordered_names))

    return ReleaseResult(
        released=list(ordered_names[:excess]),
        retained=list(ordered_names[excess:]),
    )
