"""Privacy dashboard and waitlist actions ({success, error, data} envelope)."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from research_api.db.models import PrivacyRequest, UserProfile, WaitlistRequest

WAITLIST_FORM = {
    "request_type": "early_access",
    "priority_level": "high",
    "use_case_description": "Screening REIT coverage for a new income fund",
    "timeline_urgency": "this_quarter",
    "budget_range": "10k-50k",
    "team_size": "12",
    "current_tools": "Bloomberg, FactSet",
    "requested_features": ["mlp_coverage", "excel_export"],
}


# ============================================================================
# Privacy
# ============================================================================


def test_update_preferences_records_consent(test_client, db_session, profile):
    response = test_client.post(
        "/privacy/preferences",
        json={"email_updates": True, "research_reports": False, "marketing": True},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "error": None, "data": None}

    db_session.expire_all()
    row = db_session.query(UserProfile).filter(UserProfile.id == profile.id).one()
    assert row.marketing_consent is True
    assert row.marketing_consent_date is not None
    assert row.communication_preferences == {
        "email_updates": True,
        "research_reports": False,
        "marketing": True,
    }
    log = db_session.query(PrivacyRequest).filter(PrivacyRequest.user_id == profile.id).one()
    assert log.request_type == "consent_update"
    assert log.status == "completed"


def test_update_preferences_without_profile_is_404(test_client):
    response = test_client.post(
        "/privacy/preferences",
        json={"email_updates": True, "research_reports": True, "marketing": False},
    )
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_update_preferences_db_failure_is_500(test_client, profile):
    with patch(
        "research_api.privacy.update_privacy_preferences",
        side_effect=OperationalError("UPDATE", {}, Exception("timeout")),
    ):
        response = test_client.post(
            "/privacy/preferences",
            json={"email_updates": True, "research_reports": True, "marketing": False},
        )

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to update preferences", "data": None}


def test_export_contains_all_sections_and_is_logged(test_client, db_session, profile):
    response = test_client.post("/privacy/export")

    assert response.status_code == 200
    data = response.json()["data"]
    assert set(data) == {
        "export_info",
        "account_info",
        "profile_data",
        "privacy_preferences",
        "privacy_request_history",
        "subscription_info",
    }
    assert data["export_info"]["user_id"] == profile.id
    assert data["account_info"]["email"] == profile.email
    assert data["profile_data"]["organization_name"] == "Example Capital"
    assert data["subscription_info"]["has_paid"] is False

    logged = db_session.query(PrivacyRequest).filter(PrivacyRequest.request_type == "data_export").one()
    assert logged.status == "completed"
    assert logged.completed_at is not None


def test_export_without_profile(test_client):
    response = test_client.post("/privacy/export")
    assert response.status_code == 404
    assert response.json()["error"] == "Failed to fetch user data"


def _profile_snapshot(db_session, user_id: str) -> dict:
    db_session.expire_all()
    row = db_session.query(UserProfile).filter(UserProfile.id == user_id).one()
    return {attr.key: getattr(row, attr.key) for attr in UserProfile.__mapper__.column_attrs}


def test_deletion_request_then_history(test_client, db_session, profile):
    before = _profile_snapshot(db_session, profile.id)

    response = test_client.post("/privacy/deletion", json={"reason": "Closing the fund"})

    assert response.status_code == 200
    request_id = response.json()["data"]["request_id"]

    history = test_client.get("/privacy/requests").json()
    assert [item["id"] for item in history] == [request_id]
    assert history[0]["request_type"] == "data_deletion"
    assert history[0]["status"] == "pending"
    assert history[0]["request_details"] == {"reason": "Closing the fund"}

    # Deletion is operator-reviewed; the profile itself is untouched
    assert _profile_snapshot(db_session, profile.id) == before


def test_deletion_request_default_reason(test_client, profile):
    test_client.post("/privacy/deletion", json={})
    history = test_client.get("/privacy/requests").json()
    assert history[0]["request_details"] == {"reason": "User requested account deletion"}


def test_deletion_request_without_body(test_client, db_session, profile):
    response = test_client.post("/privacy/deletion")

    assert response.status_code == 200
    assert response.json()["success"] is True
    row = db_session.query(PrivacyRequest).filter(PrivacyRequest.request_type == "data_deletion").one()
    assert row.status == "pending"
    assert row.request_details == {"reason": "User requested account deletion"}


# ============================================================================
# Waitlist
# ============================================================================


def test_submit_waitlist_request(test_client, db_session, profile):
    response = test_client.post("/waitlist", data=WAITLIST_FORM)

    assert response.status_code == 200, response.text
    assert response.json()["success"] is True

    request = db_session.query(WaitlistRequest).one()
    assert request.status == "pending"
    assert request.team_size == 12
    assert request.current_tools == ["Bloomberg", "FactSet"]
    assert request.requested_features == ["mlp_coverage", "excel_export"]

    db_session.expire_all()
    row = db_session.query(UserProfile).filter(UserProfile.id == profile.id).one()
    assert row.early_access_requested is True
    assert row.waitlist_status == "pending"
    assert row.waitlist_joined_at is not None


def test_submit_waitlist_missing_fields(test_client, db_session, profile):
    form = {**WAITLIST_FORM, "use_case_description": ""}
    response = test_client.post("/waitlist", data=form)

    assert response.status_code == 400
    assert response.json()["error"] == "Please fill in all required fields"
    assert db_session.query(WaitlistRequest).count() == 0


def test_submit_waitlist_hidden_user_id_is_ignored(test_client, db_session, profile, test_user):
    form = {**WAITLIST_FORM, "user_id": "9d1e7b2a-0000-4000-8000-000000000002"}
    response = test_client.post("/waitlist", data=form)

    assert response.status_code == 200
    assert db_session.query(WaitlistRequest).one().user_id == test_user.id


def test_submit_waitlist_unknown_field_is_rejected(test_client, db_session, profile):
    response = test_client.post("/waitlist", data={**WAITLIST_FORM, "status": "approved"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid form submission"
    assert db_session.query(WaitlistRequest).count() == 0


def test_submit_waitlist_without_profile_still_records_request(test_client, db_session):
    response = test_client.post("/waitlist", data=WAITLIST_FORM)

    assert response.status_code == 200
    assert db_session.query(WaitlistRequest).count() == 1


def test_waitlist_status_and_preferences(test_client, profile):
    test_client.post("/waitlist", data=WAITLIST_FORM)

    status_body = test_client.get("/waitlist/status").json()
    assert status_body["profile"]["waitlist_status"] == "pending"
    assert len(status_body["requests"]) == 1

    response = test_client.post(
        "/waitlist/preferences",
        json={"requestType": "enterprise_trial", "priorityLevel": "medium", "budgetRange": ""},
    )
    assert response.json()["success"] is True

    updated = test_client.get("/waitlist/status").json()["requests"][0]
    assert updated["request_type"] == "enterprise_trial"
    assert updated["priority_level"] == "medium"
    assert updated["budget_range"] is None


def test_waitlist_preferences_without_request_is_404(test_client, profile):
    response = test_client.post(
        "/waitlist/preferences",
        json={"requestType": "early_access", "priorityLevel": "low"},
    )
    assert response.status_code == 404
    assert response.json()["error"] == "No waitlist request found"
