"""Early-access waitlist service."""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from research_api.db.models import UserProfile, WaitlistRequest
from research_api.db.profiles import get_profile
from research_api.privacy import InvalidStatusTransition
from research_api.schemas import WaitlistForm

logger = logging.getLogger(__name__)

# Operators may only move a request forward through this order
WAITLIST_STATUS_ORDER = ("pending", "reviewed", "approved", "notified", "converted")


def parse_team_size(raw: str) -> Optional[int]:
    """Digits of a free-text team size ("10-20 people" → 1020, "n/a" → None)."""
    digits = re.sub(r"[^0-9]", "", raw or "")
    if not digits:
        return None
    return int(digits) or None


def parse_current_tools(raw: str) -> list[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


def submit_waitlist_request(db: Session, user_id: str, form: WaitlistForm) -> WaitlistRequest:
    """Insert a pending request, then flag the profile as waiting.

    The profile update is best-effort: its failure is logged and the request
    still stands.
    """
    request = WaitlistRequest(
        id=str(uuid.uuid4()),
        user_id=user_id,
        request_type=form.request_type,
        priority_level=form.priority_level,
        use_case_description=form.use_case_description,
        timeline_urgency=form.timeline_urgency or None,
        budget_range=form.budget_range or None,
        team_size=parse_team_size(form.team_size),
        current_tools=parse_current_tools(form.current_tools),
        requested_features=list(form.requested_features),
        status="pending",
    )
    db.add(request)
    db.commit()

    logger.info(
        "waitlist.request.submitted",
        extra={"user_id": user_id, "request_id": request.id, "priority_level": form.priority_level},
    )

    try:
        profile = get_profile(db, user_id)
        if profile is not None:
            profile.early_access_requested = True
            profile.waitlist_status = "pending"
            if profile.waitlist_joined_at is None:
                profile.waitlist_joined_at = datetime.now(timezone.utc)
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "waitlist.profile_update_failed",
            extra={"user_id": user_id, "error_type": type(e).__name__},
        )

    return request


def get_waitlist_status(
    db: Session, user_id: str
) -> tuple[Optional[UserProfile], list[WaitlistRequest]]:
    """Profile waitlist fields plus the user's requests, newest first."""
    profile = get_profile(db, user_id)
    requests = (
        db.query(WaitlistRequest)
        .filter(WaitlistRequest.user_id == user_id)
        .order_by(WaitlistRequest.created_at.desc())
        .all()
    )
    return profile, requests


def update_waitlist_preferences(
    db: Session,
    user_id: str,
    *,
    request_type: str,
    priority_level: str,
    budget_range: Optional[str] = None,
) -> Optional[WaitlistRequest]:
    """Update the user's most recent request. Returns None if there is none."""
    request = (
        db.query(WaitlistRequest)
        .filter(WaitlistRequest.user_id == user_id)
        .order_by(WaitlistRequest.created_at.desc())
        .first()
    )
    if request is None:
        return None

    request.request_type = request_type
    request.priority_level = priority_level
    request.budget_range = budget_range or None
    request.updated_at = datetime.now(timezone.utc)
    db.commit()

    logger.info("waitlist.preferences.updated", extra={"user_id": user_id, "request_id": request.id})
    return request


def transition_waitlist_request(db: Session, request_id: str, new_status: str) -> Optional[WaitlistRequest]:
    """Operator status change; only forward moves along WAITLIST_STATUS_ORDER.

    Returns:
        Updated request, or None if it does not exist

    Raises:
        InvalidStatusTransition: Backward, same-status or unknown move
    """
    request = db.query(WaitlistRequest).filter(WaitlistRequest.id == request_id).first()
    if request is None:
        return None

    order = {status: index for index, status in enumerate(WAITLIST_STATUS_ORDER)}
    current_rank = order.get(request.status, -1)
    new_rank = order.get(new_status)
    if new_rank is None or new_rank <= current_rank:
        raise InvalidStatusTransition(request.status, new_status)

    previous = request.status
    request.status = new_status
    db.commit()

    logger.info(
        "waitlist.request.transitioned",
        extra={"request_id": request_id, "from_status": previous, "to_status": new_status},
    )
    return request
