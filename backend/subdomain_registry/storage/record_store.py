"""
Record Store - key/value abstraction for registry records.

Provides:
- RecordStore: interface (get, put, delete, list_by_prefix, mutation)
- InMemoryRecordStore: thread-safe single-process store

CONSISTENCY: No backend offers compare-and-swap through this interface.
Writes are durable but may not be visible to concurrent readers on other
nodes immediately, so two simultaneous claims of the same name can both
see it as available and the last write wins. Stores that need mutual
exclusion (FileRecordStore) implement it inside ``mutation()``.
"""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from threading import Lock
from typing import Any, Dict, Iterator, Optional

from subdomain_registry.errors import StoreFailureError

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Interface for the registry's key/value storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None if absent."""

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is a no-op."""

    @abstractmethod
    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        """Return every key/value pair whose key starts with prefix."""

    @contextmanager
    def mutation(self) -> Iterator[None]:
        """
        Scope one read-modify-write sequence.

        The default does nothing: the sequence is re-runnable and the race
        described in the module docstring is accepted.
        """
        yield

    def close(self) -> None:
        """Release backend resources."""

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return json.dumps(value, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise StoreFailureError(f"Value for {key} is not JSON serializable", cause=e)

    @staticmethod
    def _decode(key: str, raw: Optional[str]) -> Optional[Any]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreFailureError(f"Corrupt value stored under {key}", cause=e)


class InMemoryRecordStore(RecordStore):
    """
    In-process store.

    Values are kept as JSON text so callers never share mutable state with
    the store. Suitable for tests and single-process deployments.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        return self._decode(key, raw)

    def put(self, key: str, value: Any) -> None:
        encoded = self._encode(key, value)
        with self._lock:
            self._data[key] = encoded

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        with self._lock:
            items = sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))
        return {k: self._decode(k, v) for k, v in items}

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
