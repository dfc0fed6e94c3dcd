"""Privacy / data-rights service.

Preferences, self-service export, deletion requests and the request log.
``privacy_requests`` is append-only from the user's side; only operators
move a request through its status lifecycle.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from research_api.auth.identity import IdentityUser
from research_api.db.models import PrivacyRequest
from research_api.db.profiles import get_profile
from research_api.schemas import PrivacyRequestItem

logger = logging.getLogger(__name__)

DEFAULT_DELETION_REASON = "User requested account deletion"
EXPORT_NOTES = "Self-service data export via privacy dashboard"
DELETION_NOTES = "Account deletion requested via privacy dashboard"

# status -> statuses an operator may move it to
PRIVACY_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"processing", "rejected"}),
    "processing": frozenset({"completed", "rejected"}),
    "completed": frozenset(),
    "rejected": frozenset(),
}


class ProfileNotFoundError(Exception):
    """The caller has no profile row."""


class InvalidStatusTransition(Exception):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move request from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def _new_request(
    user_id: str,
    request_type: str,
    status: str,
    *,
    request_details: Optional[dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> PrivacyRequest:
    return PrivacyRequest(
        id=str(uuid.uuid4()),
        user_id=user_id,
        request_type=request_type,
        status=status,
        request_details=request_details,
        notes=notes,
        completed_at=_now() if status == "completed" else None,
    )


def update_privacy_preferences(
    db: Session,
    user_id: str,
    *,
    email_updates: bool,
    research_reports: bool,
    marketing: bool,
) -> None:
    """Replace communication preferences and record the consent change.

    Raises:
        ProfileNotFoundError: No profile for user_id
        SQLAlchemyError: Write failed (rolled back by caller)
    """
    profile = get_profile(db, user_id)
    if profile is None:
        raise ProfileNotFoundError(user_id)

    preferences = {
        "email_updates": email_updates,
        "research_reports": research_reports,
        "marketing": marketing,
    }
    profile.marketing_consent = marketing
    profile.marketing_consent_date = _now() if marketing else None
    profile.communication_preferences = preferences

    db.add(
        _new_request(
            user_id,
            "consent_update",
            "completed",
            request_details={"communication_preferences": preferences},
            notes="Privacy preferences updated via privacy dashboard",
        )
    )
    db.commit()

    logger.info(
        "privacy.preferences.updated",
        extra={"user_id": user_id, "marketing_consent": marketing},
    )


def list_privacy_requests(db: Session, user_id: str) -> list[PrivacyRequest]:
    """The user's request history, newest first."""
    return (
        db.query(PrivacyRequest)
        .filter(PrivacyRequest.user_id == user_id)
        .order_by(PrivacyRequest.created_at.desc())
        .all()
    )


def export_user_data(db: Session, user: IdentityUser) -> dict[str, Any]:
    """Assemble the user's data export and log it as a completed request.

    Raises:
        ProfileNotFoundError: No profile for the user
    """
    profile = get_profile(db, user.id)
    if profile is None:
        raise ProfileNotFoundError(user.id)

    history = [
        PrivacyRequestItem.model_validate(r).model_dump(mode="json")
        for r in list_privacy_requests(db, user.id)
    ]

    export = {
        "export_info": {
            "generated_at": _now().isoformat(),
            "user_id": user.id,
            "export_type": "complete_user_data",
        },
        "account_info": {
            "email": user.email,
            "created_at": _iso(user.created_at),
            "last_sign_in_at": _iso(user.last_sign_in_at),
            "email_confirmed_at": _iso(user.email_confirmed_at),
        },
        "profile_data": {
            "full_name": profile.full_name,
            "phone_number": profile.phone_number,
            "organization_name": profile.organization_name,
            "organization_type": profile.organization_type,
            "role_title": profile.role_title,
            "aum_range": profile.aum_range,
            "investment_focus": profile.investment_focus,
            "primary_asset_classes": profile.primary_asset_classes,
            "current_research_providers": profile.current_research_providers,
            "referral_source": profile.referral_source,
            "referral_code": profile.referral_code,
        },
        "privacy_preferences": {
            "marketing_consent": profile.marketing_consent,
            "marketing_consent_date": _iso(profile.marketing_consent_date),
            "communication_preferences": profile.communication_preferences,
            "cookie_consent": profile.cookie_consent,
        },
        "privacy_request_history": history,
        "subscription_info": {
            "stripe_customer_id": profile.stripe_customer_id,
            "subscription_status": profile.subscription_status,
            "subscription_plan_id": profile.subscription_plan_id,
            "has_paid": profile.has_paid,
        },
    }

    db.add(_new_request(user.id, "data_export", "completed", notes=EXPORT_NOTES))
    db.commit()

    logger.info("privacy.export.generated", extra={"user_id": user.id, "history_count": len(history)})
    return export


def request_account_deletion(db: Session, user_id: str, reason: Optional[str] = None) -> PrivacyRequest:
    """Queue a deletion request for operator review. The profile is untouched."""
    request = _new_request(
        user_id,
        "data_deletion",
        "pending",
        request_details={"reason": reason or DEFAULT_DELETION_REASON},
        notes=DELETION_NOTES,
    )
    db.add(request)
    db.commit()

    logger.info("privacy.deletion.requested", extra={"user_id": user_id, "request_id": request.id})
    return request


def transition_privacy_request(
    db: Session,
    request_id: str,
    new_status: str,
    notes: Optional[str] = None,
) -> Optional[PrivacyRequest]:
    """Operator status change, validated against PRIVACY_STATUS_TRANSITIONS.

    Returns:
        Updated request, or None if it does not exist

    Raises:
        InvalidStatusTransition: Transition not allowed
    """
    request = db.query(PrivacyRequest).filter(PrivacyRequest.id == request_id).first()
    if request is None:
        return None

    if new_status not in PRIVACY_STATUS_TRANSITIONS.get(request.status, frozenset()):
        raise InvalidStatusTransition(request.status, new_status)

    previous = request.status
    request.status = new_status
    if notes is not None:
        request.notes = notes
    if new_status == "completed":
        request.completed_at = _now()
    db.commit()

    logger.info(
        "privacy.request.transitioned",
        extra={"request_id": request_id, "from_status": previous, "to_status": new_status},
    )
    return request
