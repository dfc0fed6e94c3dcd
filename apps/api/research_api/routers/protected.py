"""Authenticated user endpoints: entitlements, profile, paid content, reports."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from research_api import entitlements, reports
from research_api.auth.session_auth import SessionAuthContext, get_session_auth_context
from research_api.db.session import get_db
from research_api.entitlements import PREMIUM, require_entitlement
from research_api.problem_details import problem_exception
from research_api.schemas import (
    EntitlementCheckResponse,
    PaidContentResponse,
    ProfileUpdateRequest,
    ReportItem,
    ReportsResponse,
    UserProfileResponse,
)

router = APIRouter(prefix="/api", tags=["protected"])
logger = logging.getLogger(__name__)


def _to_items(classified: list) -> list[ReportItem]:
    return [
        ReportItem.model_validate(row).model_copy(update={"classification": label})
        for row, label in classified
    ]


@router.get("/entitlements/{name}", response_model=EntitlementCheckResponse)
def get_entitlement(
    name: str,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
) -> EntitlementCheckResponse:
    outcome = entitlements.check_entitlement(db, auth.user_id, name)
    if outcome.error is not None or outcome.check is None:
        raise problem_exception(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal Server Error",
            "Error checking entitlements",
        )
    return EntitlementCheckResponse(has_access=outcome.check.has_access, reason=outcome.check.reason)


@router.get("/profile", response_model=UserProfileResponse)
def get_profile(
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
) -> UserProfileResponse:
    profile = entitlements.get_user_profile(db, auth.user_id)
    if profile is None:
        raise problem_exception(status.HTTP_404_NOT_FOUND, "Not Found", "User profile not found")
    return UserProfileResponse.model_validate(profile)


@router.patch("/profile", response_model=UserProfileResponse)
def patch_profile(
    body: ProfileUpdateRequest,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
) -> UserProfileResponse:
    updates = body.model_dump(exclude_unset=True)
    try:
        profile = entitlements.update_user_profile(db, auth.user_id, updates)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("profile.update_failed", extra={"user_id": auth.user_id, "error_type": type(e).__name__})
        raise problem_exception(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", "Failed to update profile"
        )
    if profile is None:
        raise problem_exception(status.HTTP_404_NOT_FOUND, "Not Found", "User profile not found")
    return UserProfileResponse.model_validate(profile)


@router.get("/paid-content", response_model=PaidContentResponse)
def paid_content(
    auth: SessionAuthContext = Depends(require_entitlement(PREMIUM)),
    db: Session = Depends(get_db),
) -> PaidContentResponse:
    """Premium dashboard: the caller's profile and every report they can open."""
    profile = entitlements.get_user_profile(db, auth.user_id)
    if profile is None:
        raise problem_exception(status.HTTP_404_NOT_FOUND, "Not Found", "User profile not found")
    classified = reports.list_reports(db, auth.user_id, access="all")
    return PaidContentResponse(
        profile=UserProfileResponse.model_validate(profile),
        reports=_to_items(classified),
    )


@router.get("/reports", response_model=ReportsResponse)
def list_reports(
    ticker: Optional[str] = Query(None),
    report_type: Optional[str] = Query(None, alias="type", description="general | reit | mlp | all"),
    access: Optional[str] = Query(None, description="free | purchased | all"),
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
) -> ReportsResponse:
    try:
        classified = reports.list_reports(
            db, auth.user_id, ticker=ticker, report_type=report_type, access=access
        )
    except SQLAlchemyError as e:
        logger.error("reports.fetch_failed", extra={"user_id": auth.user_id, "error_type": type(e).__name__})
        raise problem_exception(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", "Failed to fetch reports"
        )

    items = _to_items(classified)
    return ReportsResponse(reports=items, total=len(items))
