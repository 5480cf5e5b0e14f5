"""
Registry data model.

Records are stored as JSON in the record store using camelCase keys, the
same shape served by GET /registry.json. Pydantic handles the snake_case
attribute names on the Python side.

Records written by earlier generations of the registry may lack ``status``
or ``collaborators``; they read as active with no collaborators.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse a stored timestamp for ordering.

    Legacy records carry date-only values ("2025-01-01"); unparseable values
    sort as the oldest possible time.
    """
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SubdomainStatus(str, Enum):
    ACTIVE = "active"
    FROZEN = "frozen"


class CollaboratorStatus(str, Enum):
    INVITED = "invited"
    ACTIVE = "active"


class AccessRight(str, Enum):
    READ = "read"
    WRITE = "write"


class AccessRole(str, Enum):
    """Role of a requester on a subdomain."""
    OWNER = "owner"
    COLLABORATOR = "collaborator"
    INVITED = "invited"
    NONE = "none"
    # No record exists for the name
    UNCLAIMED = "unclaimed"


class StoredModel(BaseModel):
    """Base for models persisted as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Collaborator(StoredModel):
    email: str
    user_id: Optional[str] = None
    status: CollaboratorStatus = CollaboratorStatus.INVITED
    right: AccessRight = AccessRight.WRITE
    invited_at: str = Field(default_factory=utc_now_iso)
    joined_at: Optional[str] = None


class SubdomainRecord(StoredModel):
    """A claimed subdomain."""

    name: str = ""
    owner_id: str
    claimed_at: str = Field(default_factory=utc_now_iso)
    status: SubdomainStatus = SubdomainStatus.ACTIVE
    frozen_at: Optional[str] = None
    collaborators: List[Collaborator] = Field(default_factory=list)

    @property
    def is_frozen(self) -> bool:
        return self.status == SubdomainStatus.FROZEN

    @property
    def claimed_at_datetime(self) -> datetime:
        return parse_timestamp(self.claimed_at)

    def find_collaborator(self, email: str) -> Optional[Collaborator]:
        normalized = normalize_email(email)
        for collaborator in self.collaborators:
            if normalize_email(collaborator.email) == normalized:
                return collaborator
        return None

    def active_collaborator_ids(self) -> List[str]:
        return [
            c.user_id
            for c in self.collaborators
            if c.status == CollaboratorStatus.ACTIVE and c.user_id
        ]


class UserIndex(StoredModel):
    """
    Per-user secondary index derived from subdomain records.

    Never authoritative: ``rebuild_user_index`` can recreate it from a scan.
    ``quota`` of None means no webhook-assigned quota.
    """

    owned_subdomains: List[str] = Field(default_factory=list)
    collaborating_subdomains: List[str] = Field(default_factory=list)
    quota: Optional[int] = None

    # False for indexes stored in the pre-split {subdomains, quota} shape
    complete: bool = Field(default=True, exclude=True)

    @classmethod
    def from_store(cls, data: Dict[str, Any]) -> "UserIndex":
        index = cls.model_validate(data)
        if "ownedSubdomains" not in data:
            index.complete = False
        return index

    def add_owned(self, name: str) -> None:
        if name not in self.owned_subdomains:
            self.owned_subdomains.append(name)

    def remove_owned(self, name: str) -> None:
        self.owned_subdomains = [n for n in self.owned_subdomains if n != name]

    def add_collaborating(self, name: str) -> None:
        if name not in self.collaborating_subdomains:
            self.collaborating_subdomains.append(name)

    def remove_collaborating(self, name: str) -> None:
        self.collaborating_subdomains = [n for n in self.collaborating_subdomains if n != name]


class LegacyClaim(StoredModel):
    user_id: str
    claimed_at: str = ""


class LegacyRegistry(StoredModel):
    """Single-blob registry from the previous storage generation."""

    claims: Dict[str, LegacyClaim] = Field(default_factory=dict)
    reserved: List[str] = Field(default_factory=list)
    preallocated: Dict[str, str] = Field(default_factory=dict)
    quotas: Dict[str, int] = Field(default_factory=dict)


def normalize_name(name: str) -> str:
    return (name or "").strip().lower()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()
