"""Health check endpoints."""

import logging

import httpx
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from research_api import __version__
from research_api.db.session import get_db
from research_api.supabase_client import get_supabase_api_key, get_supabase_url

router = APIRouter()
logger = logging.getLogger(__name__)

SUPABASE_HEALTH_TIMEOUT_SECONDS = 3.0


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    services: dict[str, str]


def check_database(db: Session) -> str:
    """Check database connectivity.

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        db.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        logger.error("health.database_down", extra={"error_type": type(e).__name__})
        return f"down: {str(e)[:50]}"


def check_supabase() -> str:
    """Check Supabase Auth reachability (GET /auth/v1/health).

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        url = f"{get_supabase_url().rstrip('/')}/auth/v1/health"
        response = httpx.get(
            url,
            headers={"apikey": get_supabase_api_key()},
            timeout=SUPABASE_HEALTH_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        return "up"
    except RuntimeError as e:
        # Config error (missing env var)
        logger.error("health.supabase_misconfigured", extra={"error": str(e)[:80]})
        return f"down: config error - {str(e)[:40]}"
    except httpx.HTTPError as e:
        logger.error("health.supabase_down", extra={"error_type": type(e).__name__})
        return f"down: {str(e)[:50]}"


@router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Liveness. Always 200 OK; use /readyz for dependency checks."""
    return HealthResponse(status="healthy", version=__version__, services={"api": "up"})


@router.get("/readyz", response_model=HealthResponse)
def readiness_check(response: Response, db: Session = Depends(get_db)) -> HealthResponse:
    """Readiness. Returns 503 if the database or Supabase Auth is down."""
    services = {
        "api": "up",
        "database": check_database(db),
        "supabase": check_supabase(),
    }

    if any(svc_status.startswith("down") for svc_status in services.values()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", version=__version__, services=services)

    return HealthResponse(status="ready", version=__version__, services=services)
