"""
Record storage for the subdomain registry.

Usage:
    from subdomain_registry.storage import build_record_store, RegistryRepository

    store = build_record_store("redis://localhost:6379/0")
    repo = RegistryRepository(store)
"""

import logging
from urllib.parse import urlparse

from subdomain_registry.storage.record_store import InMemoryRecordStore, RecordStore
from subdomain_registry.storage.registry_repository import RegistryRepository

logger = logging.getLogger(__name__)


def build_record_store(url: str) -> RecordStore:
    """
    Build a record store from a URL.

    Supported schemes:
        memory://                 InMemoryRecordStore
        redis:// | rediss://      RedisRecordStore
        file:///path/to/file.json FileRecordStore
        sqlite:// | postgresql:// SqlRecordStore
    """
    scheme = urlparse(url or "memory://").scheme.lower()

    if scheme in ("", "memory"):
        return InMemoryRecordStore()

    if scheme in ("redis", "rediss"):
        from subdomain_registry.storage.redis_store import RedisRecordStore
        return RedisRecordStore(url=url)

    if scheme == "file":
        from subdomain_registry.storage.file_store import FileRecordStore
        path = urlparse(url).path
        if not path:
            raise ValueError(f"File store URL has no path: {url}")
        return FileRecordStore(path)

    if scheme.startswith("sqlite") or scheme.startswith("postgres"):
        from subdomain_registry.storage.sql_store import SqlRecordStore
        return SqlRecordStore(database_url=url)

    raise ValueError(f"Unsupported REGISTRY_STORE_URL scheme: {scheme}")


__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "RegistryRepository",
    "build_record_store",
]
