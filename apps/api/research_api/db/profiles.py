"""Lookups and writes on ``user_profiles``.

All writes are single-row last-write-wins updates; callers own the commit.
"""

from typing import Any, Optional

from sqlalchemy.orm import Session

from research_api.db.models import UserProfile


def get_profile(db: Session, user_id: str) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.id == user_id).first()


def update_profiles_by_customer_id(db: Session, customer_id: str, values: dict[str, Any]) -> int:
    """Apply ``values`` to every profile linked to a Stripe customer.

    Returns:
        Number of rows matched (0 when the customer is not linked yet)
    """
    profiles = (
        db.query(UserProfile)
        .filter(UserProfile.stripe_customer_id == customer_id)
        .all()
    )
    for profile in profiles:
        _apply(profile, values)
    return len(profiles)


def update_profiles_by_email(db: Session, email: str, values: dict[str, Any]) -> int:
    """Apply ``values`` to every profile with this email. Returns rows matched."""
    profiles = db.query(UserProfile).filter(UserProfile.email == email).all()
    for profile in profiles:
        _apply(profile, values)
    return len(profiles)


def create_profile_if_absent(db: Session, user_id: str, values: dict[str, Any]) -> bool:
    """Insert the profile row unless one already exists (e.g. created by a DB trigger).

    Returns:
        True if a row was inserted
    """
    if get_profile(db, user_id) is not None:
        return False
    db.add(UserProfile(id=user_id, **values))
    return True


def _apply(profile: UserProfile, values: dict[str, Any]) -> None:
    for field, value in values.items():
        setattr(profile, field, value)
