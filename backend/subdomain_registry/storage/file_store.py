"""
File-backed record store with a lock file.

For single-host deployments where one process family owns all writes and
the filesystem offers no compare-and-swap. Every read-modify-write sequence
runs under an exclusive lock file:

- The lock is created with O_CREAT | O_EXCL and holds the owner's pid
- Waiters poll until LOCK_TIMEOUT_SECONDS elapses
- A lock older than the timeout is treated as stale (crashed holder),
  removed, and acquisition is retried once
- The data file is replaced atomically (temp file + os.replace)

The lock is reentrant per thread, so service code can hold it across a
whole ``mutation()`` while the individual get/put calls inside it reuse it.
"""

import json
import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from subdomain_registry.errors import StoreFailureError
from subdomain_registry.storage.record_store import RecordStore

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 5.0
LOCK_POLL_SECONDS = 0.05


class FileRecordStore(RecordStore):
    """Record store persisted as one JSON document on disk."""

    def __init__(
        self,
        path: str,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
        poll_interval: float = LOCK_POLL_SECONDS,
    ):
        self._path = Path(path)
        self._lock_path = self._path.with_suffix(self._path.suffix + ".lock")
        self._lock_timeout = lock_timeout
        self._poll_interval = poll_interval
        self._local = threading.local()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _try_create_lock(self) -> bool:
        try:
            fd = os.open(str(self._lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as handle:
            handle.write(str(os.getpid()))
        return True

    def _acquire_lock(self, allow_takeover: bool = True) -> None:
        deadline = time.monotonic() + self._lock_timeout
        while time.monotonic() < deadline:
            if self._try_create_lock():
                return
            time.sleep(self._poll_interval)

        if allow_takeover and self._lock_is_stale():
            logger.warning(
                "Taking over stale registry lock",
                extra={"lock_path": str(self._lock_path)},
            )
            try:
                os.unlink(self._lock_path)
            except FileNotFoundError:
                pass
            return self._acquire_lock(allow_takeover=False)

        raise StoreFailureError(f"Timed out waiting for lock {self._lock_path}")

    def _lock_is_stale(self) -> bool:
        try:
            age = time.time() - os.stat(self._lock_path).st_mtime
        except FileNotFoundError:
            # Released while we were giving up
            return True
        return age > self._lock_timeout

    def _release_lock(self) -> None:
        try:
            os.unlink(self._lock_path)
        except FileNotFoundError:
            logger.warning(
                "Registry lock vanished before release",
                extra={"lock_path": str(self._lock_path)},
            )

    @contextmanager
    def mutation(self) -> Iterator[None]:
        depth = getattr(self._local, "depth", 0)
        if depth == 0:
            self._acquire_lock()
        self._local.depth = depth + 1
        try:
            yield
        finally:
            self._local.depth -= 1
            if self._local.depth == 0:
                self._release_lock()

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    def _read_document(self) -> Dict[str, Any]:
        try:
            with open(self._path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            raise StoreFailureError(f"Cannot read registry file {self._path}: {e}", cause=e)
        if not isinstance(data, dict):
            raise StoreFailureError(f"Registry file {self._path} is not a JSON object")
        return data

    def _write_document(self, data: Dict[str, Any]) -> None:
        tmp_path: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                dir=str(self._path.parent),
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_path = tmp.name
                json.dump(data, tmp, indent=2, sort_keys=True)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreFailureError(f"Cannot write registry file {self._path}: {e}", cause=e)

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        with self.mutation():
            return self._read_document().get(key)

    def put(self, key: str, value: Any) -> None:
        # Round-trip through the encoder to reject non-JSON values early
        value = json.loads(self._encode(key, value))
        with self.mutation():
            data = self._read_document()
            data[key] = value
            self._write_document(data)

    def delete(self, key: str) -> None:
        with self.mutation():
            data = self._read_document()
            if key in data:
                del data[key]
                self._write_document(data)

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        with self.mutation():
            data = self._read_document()
        return {k: data[k] for k in sorted(data) if k.startswith(prefix)}
