"""
Process-wide access cache for the client access gate.

Entries outlive any single AccessGate, so a gate rebuilt for the same
subdomain (a re-render, a reconnect) starts from the last known answer
instead of an unresolved state.

Keys are ``<user_id>:<name>``. A bare ``<name>`` key holds answers for gates
that have a session token but no user id yet; an entry written for one user
is never served to another.
"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Optional

from subdomain_registry.models.registry import AccessRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAccess:
    """A resolved role/frozen pair and whether the registry itself said so."""
    role: AccessRole
    frozen: bool = False
    # True when the answer came from /resolve or a completed claim
    authoritative: bool = False


class AccessCache:
    """Thread-safe map of (user, subdomain) to ResolvedAccess."""

    def __init__(self):
        self._entries: Dict[str, ResolvedAccess] = {}
        self._lock = Lock()

    @staticmethod
    def key(name: str, user_id: Optional[str] = None) -> str:
        return f"{user_id}:{name}" if user_id else name

    def get(self, name: str, user_id: Optional[str] = None) -> Optional[ResolvedAccess]:
        with self._lock:
            return self._entries.get(self.key(name, user_id))

    def set(self, name: str, access: ResolvedAccess, user_id: Optional[str] = None) -> None:
        with self._lock:
            self._entries[self.key(name, user_id)] = access

    def invalidate(self, name: str, user_id: Optional[str] = None) -> None:
        with self._lock:
            self._entries.pop(self.key(name, user_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_cache = AccessCache()


def get_access_cache() -> AccessCache:
    """Get the process-wide access cache."""
    return _default_cache
