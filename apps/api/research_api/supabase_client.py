"""Supabase clients for the identity provider.

Two kinds of client:
- get_supabase_client(): publishable key, user-scoped, one per request.
  Session tokens arrive in cookies, so the client never persists or
  auto-refreshes a session of its own.
- get_supabase_admin_client(): secret key, bypasses RLS, process-wide.
  Used only for token revocation on sign-out.

Keys are read under the current Supabase names (SB_PUBLISHABLE_KEY,
SB_SECRET_KEY) with the pre-2024 names (SUPABASE_ANON_KEY,
SUPABASE_SERVICE_ROLE_KEY) as fallback.
"""

import logging
import os
from functools import lru_cache
from typing import Optional

from supabase import Client, ClientOptions, create_client

logger = logging.getLogger(__name__)


def _key_from_env(current: str, legacy: str) -> Optional[str]:
    value = os.getenv(current)
    if value:
        return value
    value = os.getenv(legacy)
    if value:
        logger.info(f"Using legacy {legacy} (consider migrating to {current})")
    return value or None


@lru_cache(maxsize=1)
def get_supabase_url() -> str:
    """Project URL, e.g. https://<project_ref>.supabase.co.

    Raises:
        RuntimeError: If SUPABASE_URL not set
    """
    url = os.getenv("SUPABASE_URL")
    if not url:
        raise RuntimeError(
            "SUPABASE_URL environment variable not set. "
            "Required for sign-in, sign-up and session validation."
        )
    return url


@lru_cache(maxsize=1)
def get_supabase_api_key() -> str:
    """Publishable (anon) key; requests made with it respect RLS."""
    key = _key_from_env("SB_PUBLISHABLE_KEY", "SUPABASE_ANON_KEY")
    if key is None:
        raise RuntimeError(
            "Set SB_PUBLISHABLE_KEY (or legacy SUPABASE_ANON_KEY) for user authentication."
        )
    return key


@lru_cache(maxsize=1)
def get_supabase_secret_key() -> str:
    """Secret (service role) key. Server-only; never sent to a browser."""
    key = _key_from_env("SB_SECRET_KEY", "SUPABASE_SERVICE_ROLE_KEY")
    if key is None:
        raise RuntimeError(
            "Set SB_SECRET_KEY (or legacy SUPABASE_SERVICE_ROLE_KEY) for session revocation."
        )
    return key


def _stateless_options() -> ClientOptions:
    return ClientOptions(auto_refresh_token=False, persist_session=False)


def get_supabase_client() -> Client:
    """New user-scoped client; one per request, never cached."""
    return create_client(get_supabase_url(), get_supabase_api_key(), options=_stateless_options())


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """Cached secret-key client for admin auth calls.

    Raises:
        RuntimeError: If URL or secret key not configured
    """
    url = get_supabase_url()
    client = create_client(url, get_supabase_secret_key(), options=_stateless_options())
    logger.info("supabase.admin_client.initialized", extra={"supabase_url": url})
    return client
