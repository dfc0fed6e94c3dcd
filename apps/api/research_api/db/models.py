"""SQLAlchemy ORM Models for the research portal."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import BIGINT, BOOLEAN, INTEGER, JSON, TEXT, TIMESTAMP, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UserProfile(Base):
    """Per-identity profile row (id == Supabase auth user id)."""

    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)

    # Contact
    email: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    # Organization
    organization_name: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    organization_type: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    role_title: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    aum_range: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    # Investment profile
    investment_focus: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    primary_asset_classes: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    current_research_providers: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    referral_source: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    referral_code: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    # Billing (written by the Stripe webhook only)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    subscription_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    subscription_status: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    subscription_plan_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    subscription_current_period_start: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    subscription_current_period_end: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    subscription_cancel_at_period_end: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=False
    )

    # Access
    has_paid: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    entitlements: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Privacy
    marketing_consent: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    marketing_consent_date: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    communication_preferences: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON, nullable=True
    )
    cookie_consent: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Waitlist
    waitlist_status: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    waitlist_position: Mapped[Optional[int]] = mapped_column(INTEGER, nullable=True)
    waitlist_joined_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    early_access_requested: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    early_access_granted: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    early_access_granted_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_user_profiles_email", "email"),
        Index("idx_user_profiles_stripe_customer", "stripe_customer_id"),
    )


class PrivacyRequest(Base):
    """Append-only log of data-rights requests."""

    __tablename__ = "privacy_requests"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    user_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # FK to user_profiles
    request_type: Mapped[str] = mapped_column(TEXT, nullable=False)  # data_export/data_deletion/consent_update
    status: Mapped[str] = mapped_column(TEXT, nullable=False, default="pending")
    request_details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (Index("idx_privacy_requests_user_created", "user_id", "created_at"),)


class WaitlistRequest(Base):
    """Early-access request submitted from the waitlist form."""

    __tablename__ = "waitlist_requests"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    user_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # FK to user_profiles
    request_type: Mapped[str] = mapped_column(TEXT, nullable=False)
    priority_level: Mapped[str] = mapped_column(TEXT, nullable=False)
    use_case_description: Mapped[str] = mapped_column(TEXT, nullable=False)
    timeline_urgency: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    budget_range: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    team_size: Mapped[Optional[int]] = mapped_column(INTEGER, nullable=True)
    current_tools: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    requested_features: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(TEXT, nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (Index("idx_waitlist_requests_user_created", "user_id", "created_at"),)


class SubscriptionProduct(Base):
    """Mirror of an active Stripe product."""

    __tablename__ = "subscription_products"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    stripe_product_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    name: Mapped[str] = mapped_column(TEXT, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("stripe_product_id", name="uq_subscription_products_stripe_id"),
    )


class SubscriptionPrice(Base):
    """Mirror of a Stripe price attached to a catalog product."""

    __tablename__ = "subscription_prices"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    stripe_price_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    product_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # FK to subscription_products
    currency: Mapped[str] = mapped_column(TEXT, nullable=False)
    unit_amount: Mapped[int] = mapped_column(BIGINT, nullable=False)  # minor units
    interval_type: Mapped[str] = mapped_column(TEXT, nullable=False)  # month/year/one_time
    interval_count: Mapped[int] = mapped_column(INTEGER, nullable=False, default=1)
    active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("stripe_price_id", name="uq_subscription_prices_stripe_id"),
        Index("idx_subscription_prices_product", "product_id"),
    )


class UserAccessibleAnalysis(Base):
    """Read-only view: one row per (user, report) with the access flag resolved.

    Mapped as a table so the view can be queried with the ORM; the service
    never writes to it.
    """

    __tablename__ = "user_accessible_analyses"

    user_id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    ticker: Mapped[str] = mapped_column(TEXT, primary_key=True)
    years_range: Mapped[str] = mapped_column(TEXT, primary_key=True)

    multi_year_analysis: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    management_credibility: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    predictive_inference: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    business_assessment: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    analysis_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    years_used: Mapped[Optional[int]] = mapped_column(INTEGER, nullable=True)
    analysis_years: Mapped[Optional[list[Any]]] = mapped_column(JSON, nullable=True)
    model_used: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    generated_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    is_free: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    has_access: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )


class Reit(Base):
    """Reference list of REIT tickers."""

    __tablename__ = "reits"

    ticker: Mapped[str] = mapped_column(TEXT, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)


class Mlp(Base):
    """Reference list of MLP tickers."""

    __tablename__ = "mlps"

    ticker: Mapped[str] = mapped_column(TEXT, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
