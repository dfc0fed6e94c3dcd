"""Entitlement resolver.

Answers "may this user see premium content?" from the stored profile flags
only. Stripe is never called at read time: the webhook keeps the flags
current, and a missed webhook leaves them stale until the next event.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from research_api.auth.session_auth import SessionAuthContext, get_session_auth_context
from research_api.db.models import UserProfile
from research_api.db.profiles import get_profile
from research_api.db.session import get_db
from research_api.problem_details import problem_exception

logger = logging.getLogger(__name__)

PREMIUM = "premium"

REASON_NOT_AUTHENTICATED = "User not authenticated"
REASON_PROFILE_NOT_FOUND = "User profile not found"
REASON_GRANTED = "Access granted"
REASON_DENIED = "No active subscription or entitlement"


@dataclass(frozen=True)
class EntitlementCheck:
    has_access: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class EntitlementOutcome:
    """Either a check or a data-layer error message (never both)."""

    check: Optional[EntitlementCheck] = None
    error: Optional[str] = None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def profile_has_entitlement(
    profile: UserProfile,
    entitlement: str,
    now: Optional[datetime] = None,
) -> bool:
    """Pure access rule for one profile.

    premium: active subscription with a future period end, or the paid flag.
    Anything else: an explicit ``True`` in the entitlements map.
    """
    if entitlement == PREMIUM:
        now = now or datetime.now(timezone.utc)
        period_end = profile.subscription_current_period_end
        active = (
            profile.subscription_status == "active"
            and period_end is not None
            and _as_utc(period_end) > now
        )
        return active or bool(profile.has_paid)

    entitlements: dict[str, Any] = profile.entitlements or {}
    return entitlements.get(entitlement) is True


def check_entitlement(
    db: Session,
    user_id: Optional[str],
    entitlement: str,
    now: Optional[datetime] = None,
) -> EntitlementOutcome:
    """Resolve an entitlement for a user.

    Data-layer failures are returned as ``EntitlementOutcome.error``; nothing
    is raised past this function.
    """
    if not user_id:
        return EntitlementOutcome(check=EntitlementCheck(False, REASON_NOT_AUTHENTICATED))

    try:
        profile = get_profile(db, user_id)
    except SQLAlchemyError as e:
        logger.error(
            "entitlements.check.db_error",
            extra={"user_id": user_id, "entitlement": entitlement, "error_type": type(e).__name__},
        )
        return EntitlementOutcome(error=str(e))

    if profile is None:
        return EntitlementOutcome(check=EntitlementCheck(False, REASON_PROFILE_NOT_FOUND))

    granted = profile_has_entitlement(profile, entitlement, now=now)
    return EntitlementOutcome(
        check=EntitlementCheck(granted, REASON_GRANTED if granted else REASON_DENIED)
    )


def get_user_profile(db: Session, user_id: str) -> Optional[UserProfile]:
    """The caller's own profile row (None if missing)."""
    return get_profile(db, user_id)


def update_user_profile(db: Session, user_id: str, updates: dict[str, Any]) -> Optional[UserProfile]:
    """Apply ``updates`` to the caller's own profile and commit.

    Returns:
        Updated profile, or None if the profile does not exist
    """
    profile = get_profile(db, user_id)
    if profile is None:
        return None
    for field, value in updates.items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)
    logger.info("profile.updated", extra={"user_id": user_id, "fields": sorted(updates)})
    return profile


def require_entitlement(entitlement: str) -> Callable[..., SessionAuthContext]:
    """Dependency factory: 403 unless the caller holds ``entitlement``.

    Usage:
        @router.get("/paid", dependencies=[Depends(require_entitlement("premium"))])
    """

    def _dependency(
        auth: SessionAuthContext = Depends(get_session_auth_context),
        db: Session = Depends(get_db),
    ) -> SessionAuthContext:
        outcome = check_entitlement(db, auth.user_id, entitlement)
        if outcome.error is not None:
            raise problem_exception(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal Server Error",
                "Error checking entitlements",
            )
        if not outcome.check or not outcome.check.has_access:
            logger.info(
                "entitlements.denied",
                extra={"user_id": auth.user_id, "entitlement": entitlement},
            )
            raise problem_exception(
                status.HTTP_403_FORBIDDEN,
                "Forbidden",
                "Subscription not active",
            )
        return auth

    return _dependency
