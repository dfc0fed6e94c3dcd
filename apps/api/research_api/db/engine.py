"""Database engine builder.

Supabase pooler policy:
- Default pool: NullPool (the Supabase transaction pooler does the pooling)
- pool_pre_ping=True (always verify connections)
- Supabase host → sslmode=require unless the URL already specifies one
- ENV: RP_DB_POOL=nullpool|queuepool (default: nullpool)
- ENV: RP_DB_POOL_SIZE / RP_DB_MAX_OVERFLOW (queuepool only)
"""

import logging
import os
import re
from typing import Any
from urllib.parse import parse_qs, urlparse

from sqlalchemy import Engine, NullPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from research_api.config.env import get_database_url

logger = logging.getLogger(__name__)

_SUPABASE_HOST_MARKERS = ("supabase.co", "supabase.com")


def is_supabase_host(url: str) -> bool:
    """Check if URL points to a Supabase-managed Postgres host."""
    hostname = (urlparse(url).hostname or "").lower()
    return any(hostname.endswith(marker) for marker in _SUPABASE_HOST_MARKERS)


def mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def _connect_args_for(url: str) -> dict[str, Any]:
    """Build driver connect_args (SSL + application name)."""
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        return connect_args

    if is_supabase_host(url) and "sslmode" not in parse_qs(urlparse(url).query):
        connect_args["sslmode"] = "require"

    app_name = os.getenv("RP_DB_APPLICATION_NAME", "research-portal-api")
    if app_name:
        connect_args["application_name"] = app_name
    return connect_args


def build_engine(database_url: str | None = None) -> Engine:
    """Build SQLAlchemy engine.

    Args:
        database_url: Database URL. If None, reads DATABASE_URL.

    Returns:
        SQLAlchemy Engine instance.

    Raises:
        ValueError: If no URL is available or RP_DB_POOL is invalid.
    """
    url = database_url or get_database_url()
    connect_args = _connect_args_for(url)

    pool_mode = os.getenv("RP_DB_POOL", "nullpool").lower()

    if pool_mode == "nullpool":
        engine = create_engine(
            url,
            poolclass=NullPool,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    elif pool_mode == "queuepool":
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=int(os.getenv("RP_DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("RP_DB_MAX_OVERFLOW", "10")),
            connect_args=connect_args,
        )
    else:
        raise ValueError(
            f"Invalid RP_DB_POOL value: {pool_mode}. "
            "Must be 'nullpool' or 'queuepool'."
        )

    logger.debug(
        "Database engine created: pool=%s, url=%s",
        engine.pool.__class__.__name__,
        mask_password(url),
    )
    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """Build SQLAlchemy sessionmaker (autocommit=False, autoflush=False)."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
