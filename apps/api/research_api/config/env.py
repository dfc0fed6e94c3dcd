"""Environment variable resolution utilities.

Canonical env names + fail-fast validation. Required settings have no
defaults: a missing value raises at first use with an actionable message.
"""

import os
from typing import Optional

DEFAULT_STRIPE_API_VERSION = "2025-02-24.acacia"


def get_rp_env() -> str:
    """Get deployment environment name.

    Priority:
    1. RP_ENV (canonical)
    2. Default: "local"

    Returns:
        Environment name (lowercase)
    """
    return (os.getenv("RP_ENV") or "local").lower()


def is_production_env() -> bool:
    """Return True when running in prod/production."""
    return get_rp_env() in {"prod", "production"}


def get_app_url() -> str:
    """Get the public URL of the deployed frontend.

    Priority:
    1. APP_URL (canonical)
    2. VERCEL_URL (platform-injected host, https:// prefixed)

    Used to build email redirect targets (sign-up confirmation, password reset).

    Returns:
        Base URL without trailing slash

    Raises:
        ValueError: If neither env var is set
    """
    url = os.getenv("APP_URL")
    if not url:
        vercel_host = os.getenv("VERCEL_URL")
        if vercel_host:
            url = f"https://{vercel_host}"
    if not url:
        raise ValueError(
            "APP_URL (or platform VERCEL_URL) is required. "
            "Set APP_URL to the public frontend URL (e.g., https://research.example.com)."
        )
    return url.rstrip("/")


def get_database_url() -> str:
    """Get database connection string.

    Required: DATABASE_URL

    Raises:
        ValueError: If DATABASE_URL is not set
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ValueError(
            "DATABASE_URL is required. "
            "Set DATABASE_URL to the Postgres connection string (Supabase pooler)."
        )
    return url


def get_stripe_secret_key() -> str:
    """Get Stripe secret API key.

    Required: STRIPE_SECRET_KEY

    Raises:
        ValueError: If STRIPE_SECRET_KEY is not set
    """
    key = os.getenv("STRIPE_SECRET_KEY")
    if not key:
        raise ValueError(
            "STRIPE_SECRET_KEY is required. "
            "Set STRIPE_SECRET_KEY from the Stripe dashboard (Developers → API keys)."
        )
    return key


def get_stripe_webhook_secret() -> str:
    """Get Stripe webhook signing secret.

    Required: STRIPE_WEBHOOK_SECRET

    Raises:
        ValueError: If STRIPE_WEBHOOK_SECRET is not set
    """
    secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise ValueError(
            "STRIPE_WEBHOOK_SECRET is required. "
            "Set STRIPE_WEBHOOK_SECRET to the endpoint signing secret (whsec_...)."
        )
    return secret


def get_stripe_api_version() -> str:
    """Get pinned Stripe API version (STRIPE_API_VERSION, default acacia)."""
    return os.getenv("STRIPE_API_VERSION") or DEFAULT_STRIPE_API_VERSION


def get_admin_token() -> str:
    """Get operator token for /admin endpoints.

    Raises:
        RuntimeError: If ADMIN_TOKEN not set
    """
    token = os.getenv("ADMIN_TOKEN")
    if not token:
        raise RuntimeError(
            "ADMIN_TOKEN not set. Configure ADMIN_TOKEN environment variable."
        )
    return token


def get_cors_origins() -> list[str]:
    """Get allowed CORS origins.

    CORS_ALLOWED_ORIGINS is a comma-separated allowlist. When unset, only
    localhost dev origins are allowed (credentials mode never uses "*").
    """
    raw: Optional[str] = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
