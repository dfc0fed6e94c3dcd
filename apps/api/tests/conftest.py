"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
# Inject sys.path for reliable pytest imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # => .../apps/api

import os

# Deterministic settings; must be in place before the app module is imported
os.environ["RP_JSON_LOGS"] = "false"
os.environ["APP_URL"] = "https://portal.test"
os.environ["ADMIN_TOKEN"] = "admin-test-token"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["SUPABASE_URL"] = "https://project-ref.supabase.co"
os.environ["SB_PUBLISHABLE_KEY"] = "sb_publishable_test"
os.environ["SB_SECRET_KEY"] = "sb_secret_test"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from research_api.auth.identity import IdentityUser
from research_api.auth.session_auth import (
    SessionAuthContext,
    get_optional_session_auth_context,
    get_session_auth_context,
)
from research_api.db.models import Base, UserProfile
from research_api.db.session import get_db
from research_api.main import app

TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_USER_ID = "3f8a2c1e-0000-4000-8000-000000000001"
TEST_USER_EMAIL = "analyst@example-capital.com"


@pytest.fixture(scope="function")
def db_session() -> Session:
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    try:
        yield session
        session.rollback()
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def test_user() -> IdentityUser:
    return IdentityUser(
        id=TEST_USER_ID,
        email=TEST_USER_EMAIL,
        email_confirmed_at="2026-01-05T09:00:00+00:00",
        created_at="2026-01-05T08:58:00+00:00",
        last_sign_in_at="2026-03-01T12:00:00+00:00",
    )


@pytest.fixture
def profile(db_session: Session) -> UserProfile:
    """Unpaid profile for the authenticated test user."""
    row = UserProfile(
        id=TEST_USER_ID,
        email=TEST_USER_EMAIL,
        full_name="Dana Analyst",
        organization_name="Example Capital",
        organization_type="hedge_fund",
        role_title="Portfolio Manager",
        primary_asset_classes=["equities", "reits"],
        entitlements={},
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def paid_profile(db_session: Session, profile: UserProfile) -> UserProfile:
    """Profile with an active subscription ending in 30 days."""
    profile.stripe_customer_id = "cus_test_123"
    profile.subscription_id = "sub_test_123"
    profile.subscription_status = "active"
    profile.subscription_current_period_end = datetime.now(timezone.utc) + timedelta(days=30)
    profile.has_paid = True
    profile.entitlements = {"premium": True}
    db_session.commit()
    return profile


def _override_get_db(db_session: Session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close - conftest will handle it

    return override_get_db


@pytest.fixture
def anon_client(db_session: Session):
    """TestClient with db_session override and no authenticated user."""
    app.dependency_overrides[get_db] = _override_get_db(db_session)
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def test_client(db_session: Session, test_user: IdentityUser):
    """TestClient with db_session override, authenticated as TEST_USER_ID."""

    def override_auth() -> SessionAuthContext:
        return SessionAuthContext(
            user_id=test_user.id,
            email=test_user.email,
            access_token="test-access-token",
            refresh_token="test-refresh-token",
            user=test_user,
        )

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_session_auth_context] = override_auth
    app.dependency_overrides[get_optional_session_auth_context] = override_auth
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

