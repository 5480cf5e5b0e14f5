"""
Environment-driven settings for the subdomain registry.

All configuration is read from environment variables once per process.
Deployment tooling sets these; the registry never writes them.

Usage:
    from subdomain_registry.config.settings import get_settings

    settings = get_settings()
    if settings.billing_required:
        ...
"""

import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_STORE_URL = "memory://"
BILLING_MODE_REQUIRED = "required"


def parse_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated env value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_plan_quotas(value: Optional[str]) -> Dict[str, int]:
    """
    Parse the PLAN_QUOTAS JSON map of plan slug to subdomain count.

    Malformed JSON or non-integer entries are dropped with a warning, which
    leaves the affected plans unlimited.
    """
    if not value:
        return {}
    try:
        raw = json.loads(value)
    except json.JSONDecodeError as e:
        logger.warning("PLAN_QUOTAS is not valid JSON, ignoring", extra={"error": str(e)})
        return {}
    if not isinstance(raw, dict):
        logger.warning("PLAN_QUOTAS must be a JSON object, ignoring")
        return {}

    quotas: Dict[str, int] = {}
    for plan, quota in raw.items():
        if isinstance(quota, bool) or not isinstance(quota, int):
            logger.warning("Ignoring non-integer quota", extra={"plan": plan})
            continue
        quotas[str(plan)] = quota
    return quotas


def load_pem_public_key() -> str:
    """
    Load the Clerk PEM public key from a file path or inline value.

    Env files store newlines as literal ``\\n`` so those are unescaped.
    """
    key_file = os.getenv("CLERK_PEM_PUBLIC_KEY_FILE")
    if key_file:
        try:
            with open(key_file, "r") as f:
                return f.read().strip()
        except OSError as e:
            logger.error(
                "Failed to read Clerk public key file",
                extra={"path": key_file, "error": str(e)},
            )
            return ""
    return os.getenv("CLERK_PEM_PUBLIC_KEY", "").replace("\\n", "\n")


@dataclass(frozen=True)
class RegistrySettings:
    """Resolved registry configuration."""

    store_url: str = DEFAULT_STORE_URL
    clerk_pem_public_key: str = ""
    clerk_issuer_url: Optional[str] = None
    clerk_webhook_secret: str = ""
    clerk_secret_key: str = ""
    clerk_api_url: str = "https://api.clerk.com/v1"
    permitted_origins: List[str] = field(default_factory=list)
    reserved_subdomains: List[str] = field(default_factory=list)
    plan_quotas: Dict[str, int] = field(default_factory=dict)
    billing_mode: str = "off"
    admin_user_ids: List[str] = field(default_factory=list)
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "RegistrySettings":
        return cls(
            store_url=os.getenv("REGISTRY_STORE_URL", DEFAULT_STORE_URL),
            clerk_pem_public_key=load_pem_public_key(),
            clerk_issuer_url=os.getenv("CLERK_ISSUER_URL") or None,
            clerk_webhook_secret=os.getenv("CLERK_WEBHOOK_SECRET", ""),
            clerk_secret_key=os.getenv("CLERK_SECRET_KEY", ""),
            clerk_api_url=os.getenv("CLERK_API_URL", "https://api.clerk.com/v1").rstrip("/"),
            permitted_origins=parse_csv(os.getenv("PERMITTED_ORIGINS")),
            reserved_subdomains=[
                name.lower() for name in parse_csv(os.getenv("RESERVED_SUBDOMAINS"))
            ],
            plan_quotas=parse_plan_quotas(os.getenv("PLAN_QUOTAS")),
            billing_mode=os.getenv("BILLING_MODE", "off").strip().lower(),
            admin_user_ids=parse_csv(os.getenv("ADMIN_USER_IDS")),
            cors_origins=parse_csv(os.getenv("CORS_ORIGINS")) or ["*"],
        )

    @property
    def auth_configured(self) -> bool:
        return bool(self.clerk_pem_public_key or self.clerk_issuer_url)

    @property
    def billing_required(self) -> bool:
        return self.billing_mode == BILLING_MODE_REQUIRED


@lru_cache(maxsize=1)
def get_settings() -> RegistrySettings:
    """Get process-wide settings (cached)."""
    return RegistrySettings.from_env()
