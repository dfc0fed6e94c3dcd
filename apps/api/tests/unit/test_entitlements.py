"""Tests for the entitlement resolver.

Test Coverage:
1. premium: active + future period end grants
2. premium: has_paid alone grants (lapsed period)
3. premium: active but period already ended, unpaid → denied
4. Non-premium entitlement requires an explicit True in the map
5. Anonymous caller / missing profile reasons
6. Data-layer error surfaces as outcome.error (never raised)
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from research_api.db.models import UserProfile
from research_api.entitlements import (
    PREMIUM,
    REASON_DENIED,
    REASON_GRANTED,
    REASON_NOT_AUTHENTICATED,
    REASON_PROFILE_NOT_FOUND,
    check_entitlement,
    profile_has_entitlement,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _profile(**fields) -> UserProfile:
    defaults = {"id": "u1", "has_paid": False, "entitlements": {}}
    defaults.update(fields)
    return UserProfile(**defaults)


def test_active_subscription_with_future_period_end_grants_premium():
    profile = _profile(
        subscription_status="active",
        subscription_current_period_end=NOW + timedelta(days=3),
    )
    assert profile_has_entitlement(profile, PREMIUM, now=NOW) is True


def test_has_paid_grants_premium_even_after_period_end():
    profile = _profile(
        subscription_status="past_due",
        subscription_current_period_end=NOW - timedelta(days=3),
        has_paid=True,
    )
    assert profile_has_entitlement(profile, PREMIUM, now=NOW) is True


def test_expired_period_without_paid_flag_denies_premium():
    profile = _profile(
        subscription_status="active",
        subscription_current_period_end=NOW - timedelta(seconds=1),
    )
    assert profile_has_entitlement(profile, PREMIUM, now=NOW) is False


def test_trialing_status_alone_does_not_grant_premium():
    """Only the stored 'active' status counts; trialing access comes via has_paid."""
    profile = _profile(
        subscription_status="trialing",
        subscription_current_period_end=NOW + timedelta(days=3),
    )
    assert profile_has_entitlement(profile, PREMIUM, now=NOW) is False


def test_naive_period_end_is_treated_as_utc():
    profile = _profile(
        subscription_status="active",
        subscription_current_period_end=(NOW + timedelta(hours=1)).replace(tzinfo=None),
    )
    assert profile_has_entitlement(profile, PREMIUM, now=NOW) is True


def test_custom_entitlement_requires_explicit_true():
    assert profile_has_entitlement(_profile(entitlements={"api_access": True}), "api_access") is True
    assert profile_has_entitlement(_profile(entitlements={"api_access": "yes"}), "api_access") is False
    assert profile_has_entitlement(_profile(entitlements={}), "api_access") is False
    assert profile_has_entitlement(_profile(entitlements=None), "api_access") is False


def test_check_entitlement_without_user_is_not_authenticated(db_session):
    outcome = check_entitlement(db_session, None, PREMIUM)
    assert outcome.error is None
    assert outcome.check.has_access is False
    assert outcome.check.reason == REASON_NOT_AUTHENTICATED


def test_check_entitlement_missing_profile(db_session):
    outcome = check_entitlement(db_session, "no-such-user", PREMIUM)
    assert outcome.check.has_access is False
    assert outcome.check.reason == REASON_PROFILE_NOT_FOUND


def test_check_entitlement_granted_and_denied(db_session, profile, paid_profile):
    outcome = check_entitlement(db_session, paid_profile.id, PREMIUM)
    assert outcome.check.has_access is True
    assert outcome.check.reason == REASON_GRANTED

    outcome = check_entitlement(db_session, paid_profile.id, "api_access")
    assert outcome.check.has_access is False
    assert outcome.check.reason == REASON_DENIED


def test_check_entitlement_unpaid_profile_denied(db_session, profile):
    outcome = check_entitlement(db_session, profile.id, PREMIUM)
    assert outcome.error is None
    assert outcome.check.has_access is False
    assert outcome.check.reason == REASON_DENIED


def test_check_entitlement_db_error_is_returned_not_raised(db_session):
    with patch(
        "research_api.entitlements.get_profile",
        side_effect=OperationalError("SELECT", {}, Exception("connection reset")),
    ):
        outcome = check_entitlement(db_session, "u1", PREMIUM)

    assert outcome.check is None
    assert outcome.error
