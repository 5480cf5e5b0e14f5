"""
Redis-backed record store for multi-node deployments.

Redis plays the role of the distributed key/value store. Reads and writes
are single commands; there is no WATCH/MULTI around read-modify-write
sequences, so the claim race documented in record_store applies.
"""

import logging
from typing import Any, Dict, Optional

import redis

from subdomain_registry.errors import StoreFailureError
from subdomain_registry.storage.record_store import RecordStore

logger = logging.getLogger(__name__)

SCAN_BATCH_SIZE = 500


class RedisRecordStore(RecordStore):
    """Record store over a Redis connection."""

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional["redis.Redis"] = None,
        namespace: str = "registry:",
    ):
        """
        Args:
            url: Redis URL (redis://host:port/db)
            client: Pre-built client (takes precedence over url)
            namespace: Prefix applied to every key
        """
        if client is None and not url:
            raise ValueError("RedisRecordStore requires a url or a client")

        self._redis = client or redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        self._namespace = namespace
        logger.info("Redis record store configured", extra={"namespace": namespace})

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._redis.get(self._key(key))
        except redis.RedisError as e:
            raise StoreFailureError(f"Redis GET failed for {key}: {e}", cause=e)
        return self._decode(key, raw)

    def put(self, key: str, value: Any) -> None:
        encoded = self._encode(key, value)
        try:
            self._redis.set(self._key(key), encoded)
        except redis.RedisError as e:
            raise StoreFailureError(f"Redis SET failed for {key}: {e}", cause=e)

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(self._key(key))
        except redis.RedisError as e:
            raise StoreFailureError(f"Redis DELETE failed for {key}: {e}", cause=e)

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        pattern = f"{self._key(prefix)}*"
        try:
            full_keys = sorted(self._redis.scan_iter(match=pattern, count=SCAN_BATCH_SIZE))
            values = self._redis.mget(full_keys) if full_keys else []
        except redis.RedisError as e:
            raise StoreFailureError(f"Redis SCAN failed for {prefix}: {e}", cause=e)

        result: Dict[str, Any] = {}
        offset = len(self._namespace)
        for full_key, raw in zip(full_keys, values):
            # Deleted between SCAN and MGET
            if raw is None:
                continue
            key = full_key[offset:]
            result[key] = self._decode(key, raw)
        return result

    def close(self) -> None:
        try:
            self._redis.close()
        except redis.RedisError as e:
            logger.warning("Redis close failed", extra={"error": str(e)})
