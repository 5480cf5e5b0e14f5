"""
Registry Seed Script
Writes reserved names, preallocated names and plan quotas from
config/registry_seed.yml into the record store.

Usage:
    python -m scripts.seed_registry
    python -m scripts.seed_registry --dry-run (to preview without saving)
    python -m scripts.seed_registry --overwrite (replace existing store values)

Environment variables:
    REGISTRY_STORE_URL: Record store URL (default: memory://, which is only
        useful with --dry-run)
"""

import json
import logging
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from subdomain_registry.config.registry_seed import get_registry_seed_loader
from subdomain_registry.config.settings import get_settings
from subdomain_registry.errors import StoreFailureError
from subdomain_registry.storage import RegistryRepository, build_record_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_registry(config_path=None, dry_run: bool = False, overwrite: bool = False) -> int:
    """
    Apply the seed file.

    Returns:
        Process exit code
    """
    loader = get_registry_seed_loader(config_path)
    settings = get_settings()

    summary = {
        "reserved": loader.reserved,
        "preallocated": loader.preallocated,
        "plan_quotas": loader.plan_quotas,
    }

    if dry_run:
        logger.info("Dry run, nothing written:\n%s", json.dumps(summary, indent=2))
        return 0

    if settings.store_url.startswith("memory"):
        logger.error("REGISTRY_STORE_URL is not set; refusing to seed an in-memory store")
        return 1

    store = build_record_store(settings.store_url)
    try:
        result = loader.apply(RegistryRepository(store), overwrite=overwrite)
    except StoreFailureError as e:
        logger.error("Seeding failed: %s", e.message)
        return 1
    finally:
        store.close()

    logger.info(
        "Seed applied: reserved=%s preallocated=%s plan_quotas=%s",
        "written" if result.reserved_written else "kept",
        "written" if result.preallocated_written else "kept",
        "written" if result.plan_quotas_written else "kept",
    )
    return 0


def main():
    import argparse

    parser = argparse.ArgumentParser(
        description="Seed reserved names, preallocated names and plan quotas into the record store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m scripts.seed_registry                  # Apply seed file
  python -m scripts.seed_registry --dry-run        # Preview without saving
  python -m scripts.seed_registry --overwrite      # Replace existing values
        """
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to registry_seed.yml (default: backend/config/registry_seed.yml)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without writing to the store"
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace seed values already in the store"
    )
    args = parser.parse_args()

    sys.exit(seed_registry(args.config, dry_run=args.dry_run, overwrite=args.overwrite))


if __name__ == "__main__":
    main()
