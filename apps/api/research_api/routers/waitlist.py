"""Early-access waitlist actions.

Endpoints (authenticated):
- POST /waitlist: Submit a request (form post)
- GET /waitlist/status: Profile waitlist fields + requests, newest first
- POST /waitlist/preferences: Update the most recent request
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from research_api import waitlist
from research_api.auth.session_auth import SessionAuthContext, get_session_auth_context
from research_api.db.session import get_db
from research_api.schemas import (
    ActionResult,
    WaitlistForm,
    WaitlistPreferencesRequest,
    WaitlistProfileStatus,
    WaitlistRequestItem,
    WaitlistStatusResponse,
)
from research_api.utils.forms import parse_form

router = APIRouter(prefix="/waitlist", tags=["waitlist"])
logger = logging.getLogger(__name__)


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ActionResult(success=False, error=message).model_dump(),
    )


@router.post("", response_model=ActionResult)
async def submit_request(
    request: Request,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
):
    try:
        form = await parse_form(request, WaitlistForm)
    except ValidationError:
        return _failure(status.HTTP_400_BAD_REQUEST, "Invalid form submission")

    if not form.is_complete():
        return _failure(status.HTTP_400_BAD_REQUEST, "Please fill in all required fields")

    try:
        created = waitlist.submit_waitlist_request(db, auth.user_id, form)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "waitlist.request.insert_failed",
            extra={"user_id": auth.user_id, "error_type": type(e).__name__},
        )
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to submit waitlist request")

    return ActionResult(success=True, data={"request_id": created.id})


@router.get("/status", response_model=WaitlistStatusResponse)
def get_status(
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
):
    try:
        profile, requests = waitlist.get_waitlist_status(db, auth.user_id)
    except SQLAlchemyError as e:
        logger.error(
            "waitlist.status.fetch_failed",
            extra={"user_id": auth.user_id, "error_type": type(e).__name__},
        )
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch waitlist status")

    return WaitlistStatusResponse(
        profile=WaitlistProfileStatus.model_validate(profile) if profile is not None else None,
        requests=[WaitlistRequestItem.model_validate(r) for r in requests],
    )


@router.post("/preferences", response_model=ActionResult)
def update_preferences(
    body: WaitlistPreferencesRequest,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
):
    try:
        updated = waitlist.update_waitlist_preferences(
            db,
            auth.user_id,
            request_type=body.request_type,
            priority_level=body.priority_level,
            budget_range=body.budget_range,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "waitlist.preferences.update_failed",
            extra={"user_id": auth.user_id, "error_type": type(e).__name__},
        )
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update waitlist preferences")

    if updated is None:
        return _failure(status.HTTP_404_NOT_FOUND, "No waitlist request found")
    return ActionResult(success=True)
