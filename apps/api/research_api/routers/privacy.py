"""Privacy dashboard actions.

Endpoints (authenticated):
- POST /privacy/preferences: Update communication preferences / marketing consent
- POST /privacy/export: Self-service data export
- POST /privacy/deletion: Request account deletion (operator-reviewed)
- GET /privacy/requests: Request history, newest first

Action endpoints answer with ``{success, error, data}``; failures keep the
envelope and set a 4xx/5xx status.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from research_api import privacy
from research_api.auth.identity import IdentityUser
from research_api.auth.session_auth import SessionAuthContext, get_session_auth_context
from research_api.db.session import get_db
from research_api.privacy import ProfileNotFoundError
from research_api.schemas import (
    AccountDeletionRequest,
    ActionResult,
    PrivacyPreferencesRequest,
    PrivacyRequestItem,
)

router = APIRouter(prefix="/privacy", tags=["privacy"])
logger = logging.getLogger(__name__)


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ActionResult(success=False, error=message).model_dump(),
    )


@router.post("/preferences", response_model=ActionResult)
def update_preferences(
    body: PrivacyPreferencesRequest,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
):
    try:
        privacy.update_privacy_preferences(
            db,
            auth.user_id,
            email_updates=body.email_updates,
            research_reports=body.research_reports,
            marketing=body.marketing,
        )
    except ProfileNotFoundError:
        return _failure(status.HTTP_404_NOT_FOUND, "User profile not found")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "privacy.preferences.update_failed",
            extra={"user_id": auth.user_id, "error_type": type(e).__name__},
        )
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update preferences")

    return ActionResult(success=True)


@router.post("/export", response_model=ActionResult)
def export_data(
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
):
    user = auth.user or IdentityUser(id=auth.user_id, email=auth.email)
    try:
        export = privacy.export_user_data(db, user)
    except ProfileNotFoundError:
        return _failure(status.HTTP_404_NOT_FOUND, "Failed to fetch user data")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "privacy.export.failed",
            extra={"user_id": auth.user_id, "error_type": type(e).__name__},
        )
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred during export"
        )

    return ActionResult(success=True, data=export)


@router.post("/deletion", response_model=ActionResult)
def request_deletion(
    body: Optional[AccountDeletionRequest] = None,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
):
    """Record a pending data_deletion request; the body (and its reason) is optional."""
    reason = body.reason if body else None
    try:
        request = privacy.request_account_deletion(db, auth.user_id, reason)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "privacy.deletion.failed",
            extra={"user_id": auth.user_id, "error_type": type(e).__name__},
        )
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to submit deletion request")

    return ActionResult(success=True, data={"request_id": request.id})


@router.get("/requests", response_model=list[PrivacyRequestItem])
def list_requests(
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
) -> list[PrivacyRequestItem]:
    return [
        PrivacyRequestItem.model_validate(r)
        for r in privacy.list_privacy_requests(db, auth.user_id)
    ]
