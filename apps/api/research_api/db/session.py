"""Database session management.

The engine is built lazily on first use so that importing the application
never requires DATABASE_URL (tests override ``get_db`` instead).
"""

from functools import lru_cache
from typing import Generator

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from research_api.db.engine import build_engine, build_sessionmaker


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Get the process-wide engine (DATABASE_URL required)."""
    return build_engine()


@lru_cache(maxsize=1)
def get_sessionmaker() -> sessionmaker[Session]:
    """Get the process-wide session factory."""
    return build_sessionmaker(get_engine())


def get_db() -> Generator[Session, None, None]:
    """
    Get database session.

    Yields:
        Session: SQLAlchemy session, closed when the request finishes
    """
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()
