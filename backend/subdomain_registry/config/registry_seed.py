"""
Registry seed configuration loader.

Loads reserved names, preallocated names and plan quotas from
config/registry_seed.yml. Deployment tooling applies the file to the record
store once; the running service reads the store, not this file. Stored plan
quotas take precedence over the PLAN_QUOTAS environment variable.

Usage:
    from subdomain_registry.config.registry_seed import get_registry_seed_loader

    loader = get_registry_seed_loader()
    loader.apply(repository)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml

from subdomain_registry.models.registry import normalize_name
from subdomain_registry.storage.registry_repository import RegistryRepository

logger = logging.getLogger(__name__)


@dataclass
class SeedApplyResult:
    """What apply() wrote."""
    reserved_written: bool = False
    preallocated_written: bool = False
    plan_quotas_written: bool = False
    reserved: List[str] = field(default_factory=list)
    preallocated: Dict[str, str] = field(default_factory=dict)


class RegistrySeedLoader:
    """
    Thread-safe singleton loader for config/registry_seed.yml.
    """

    _instance: Optional["RegistrySeedLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path
        self._raw: Dict[str, Any] = {}
        self._reserved: List[str] = []
        self._preallocated: Dict[str, str] = {}
        self._plan_quotas: Dict[str, int] = {}
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    # ------------------------------------------------------------------
    # Config resolution
    # ------------------------------------------------------------------

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        env_path = os.getenv("REGISTRY_SEED_FILE")
        candidates = [
            *([Path(env_path)] if env_path else []),
            # backend/config, next to the package
            Path(__file__).parent.parent.parent / "config" / "registry_seed.yml",
            Path(os.getcwd()) / "config" / "registry_seed.yml",
            Path(os.getcwd()) / "backend" / "config" / "registry_seed.yml",
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"registry_seed.yml not found in: {[str(p) for p in candidates]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            path = self._resolve_path()
            logger.info("Loading registry seed config from %s", path)

            with open(path, "r") as f:
                self._raw = yaml.safe_load(f) or {}

            self._reserved = sorted(
                {normalize_name(str(n)) for n in self._raw.get("reserved") or [] if n}
            )
            self._preallocated = {
                normalize_name(str(name)): str(owner)
                for name, owner in (self._raw.get("preallocated") or {}).items()
                if name and owner
            }

            self._plan_quotas = {}
            for plan, quota in (self._raw.get("plan_quotas") or {}).items():
                if isinstance(quota, bool) or not isinstance(quota, int):
                    logger.warning("Ignoring non-integer plan quota for %s", plan)
                    continue
                self._plan_quotas[str(plan)] = quota

            logger.info(
                "Loaded registry seed: %d reserved, %d preallocated, %d plans",
                len(self._reserved),
                len(self._preallocated),
                len(self._plan_quotas),
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def reload(self) -> None:
        """Re-read the YAML from disk."""
        self._load()

    @property
    def version(self) -> int:
        return self._raw.get("version", 1)

    @property
    def reserved(self) -> List[str]:
        return list(self._reserved)

    @property
    def preallocated(self) -> Dict[str, str]:
        return dict(self._preallocated)

    @property
    def plan_quotas(self) -> Dict[str, int]:
        return dict(self._plan_quotas)

    def apply(self, repository: RegistryRepository, overwrite: bool = False) -> SeedApplyResult:
        """
        Write reserved names, preallocated names and plan quotas into the
        record store.

        Existing store values are kept unless overwrite is set.
        """
        result = SeedApplyResult(reserved=self.reserved, preallocated=self.preallocated)

        with repository.store.mutation():
            if self._reserved and (overwrite or not repository.has_stored_reserved()):
                repository.put_reserved(self._reserved)
                result.reserved_written = True
            if self._preallocated and (overwrite or not repository.has_stored_preallocated()):
                repository.put_preallocated(self._preallocated)
                result.preallocated_written = True
            if self._plan_quotas and (overwrite or not repository.has_stored_plan_quotas()):
                repository.put_plan_quotas(self._plan_quotas)
                result.plan_quotas_written = True

        return result


# ------------------------------------------------------------------
# Module-level accessors
# ------------------------------------------------------------------

def get_registry_seed_loader(config_path: Optional[str] = None) -> RegistrySeedLoader:
    """Return the singleton RegistrySeedLoader."""
    return RegistrySeedLoader(config_path)


def reset_registry_seed_loader() -> None:
    """Reset singleton (for tests only)."""
    RegistrySeedLoader._instance = None
