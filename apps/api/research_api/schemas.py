"""Pydantic schemas for API requests/responses and form payloads."""

from datetime import datetime
from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details for HTTP API errors.

    RFC 9457: detail can be either a string or a structured object (dict).
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: str | dict[str, Any] = Field(..., description="Human-readable explanation or structured error details")
    instance: Optional[str] = Field(None, description="URI reference identifying the specific occurrence")


# ============================================================================
# Auth server actions (form posts)
# ============================================================================


class _FormModel(BaseModel):
    """Form payloads reject unknown fields before anything is mutated."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)


class SignInForm(_FormModel):
    email: str = ""
    password: str = ""


class SignUpForm(_FormModel):
    """Registration form with investment-firm profile data."""

    email: str = ""
    password: str = ""
    full_name: str = ""

    organization_name: str = ""
    organization_type: str = ""
    role_title: str = ""
    aum_range: str = ""
    phone_number: str = ""

    investment_focus: str = ""
    primary_asset_classes: str = ""  # comma-separated
    current_research_providers: str = ""
    referral_source: str = ""
    referral_code: str = ""

    marketing_consent: str = ""  # checkbox: "on" when ticked

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "email",
        "password",
        "full_name",
        "organization_name",
        "organization_type",
        "role_title",
    )

    def missing_required(self) -> list[str]:
        """Names of required fields left empty, in form order."""
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]

    @property
    def has_marketing_consent(self) -> bool:
        return self.marketing_consent == "on"

    def asset_classes(self) -> list[str]:
        return [s.strip() for s in self.primary_asset_classes.split(",") if s.strip()]

    def to_user_metadata(self) -> dict[str, Any]:
        """Profile fields stored as Supabase user metadata (empty strings → None)."""
        consent = self.has_marketing_consent
        return {
            "full_name": self.full_name,
            "organization_name": self.organization_name,
            "organization_type": self.organization_type,
            "role_title": self.role_title,
            "aum_range": self.aum_range or None,
            "phone_number": self.phone_number or None,
            "investment_focus": self.investment_focus or None,
            "primary_asset_classes": self.asset_classes(),
            "current_research_providers": self.current_research_providers or None,
            "referral_source": self.referral_source or None,
            "referral_code": self.referral_code or None,
            "marketing_consent": consent,
            "communication_preferences": {
                "email_updates": True,
                "research_reports": True,
                "marketing": consent,
            },
        }


class ForgotPasswordForm(_FormModel):
    email: str = ""


class ResetPasswordForm(_FormModel):
    password: str = ""
    confirm_password: str = Field("", alias="confirmPassword")


# ============================================================================
# Entitlements / profile
# ============================================================================


class EntitlementCheckResponse(BaseModel):
    """Result of an entitlement check."""

    has_access: bool
    reason: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    """PATCH /api/profile: contact, organization and investment fields only."""

    model_config = ConfigDict(extra="forbid")

    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    organization_name: Optional[str] = None
    organization_type: Optional[str] = None
    role_title: Optional[str] = None
    aum_range: Optional[str] = None
    investment_focus: Optional[str] = None
    primary_asset_classes: Optional[list[str]] = None
    current_research_providers: Optional[str] = None
    referral_source: Optional[str] = None
    referral_code: Optional[str] = None


class UserProfileResponse(BaseModel):
    """Profile row as returned to its owner."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    organization_name: Optional[str] = None
    organization_type: Optional[str] = None
    role_title: Optional[str] = None
    aum_range: Optional[str] = None
    investment_focus: Optional[str] = None
    primary_asset_classes: Optional[list[str]] = None
    current_research_providers: Optional[str] = None
    referral_source: Optional[str] = None
    referral_code: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_plan_id: Optional[str] = None
    subscription_current_period_start: Optional[datetime] = None
    subscription_current_period_end: Optional[datetime] = None
    subscription_cancel_at_period_end: bool = False
    has_paid: bool = False
    entitlements: dict[str, Any] = Field(default_factory=dict)
    marketing_consent: bool = False
    marketing_consent_date: Optional[datetime] = None
    communication_preferences: Optional[dict[str, Any]] = None
    cookie_consent: Optional[dict[str, Any]] = None
    waitlist_status: Optional[str] = None
    waitlist_position: Optional[int] = None
    waitlist_joined_at: Optional[datetime] = None
    early_access_requested: bool = False
    early_access_granted: bool = False
    early_access_granted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# Reports
# ============================================================================


ReportType = Literal["general", "reit", "mlp"]


class ReportItem(BaseModel):
    """One accessible analysis row plus its classification."""

    model_config = ConfigDict(from_attributes=True)

    ticker: str
    years_range: str
    multi_year_analysis: Optional[dict[str, Any]] = None
    management_credibility: Optional[dict[str, Any]] = None
    predictive_inference: Optional[dict[str, Any]] = None
    business_assessment: Optional[dict[str, Any]] = None
    analysis_metadata: Optional[dict[str, Any]] = None
    years_used: Optional[int] = None
    analysis_years: Optional[list[Any]] = None
    model_used: Optional[str] = None
    generated_at: Optional[datetime] = None
    is_free: bool = False
    has_access: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    classification: ReportType = "general"


class ReportsResponse(BaseModel):
    reports: list[ReportItem]
    total: int


class PaidContentResponse(BaseModel):
    """GET /api/paid-content: premium-gated dashboard payload."""

    profile: UserProfileResponse
    reports: list[ReportItem]


# ============================================================================
# Billing
# ============================================================================


class CheckoutSessionRequest(BaseModel):
    """POST /api/create-checkout-session (camelCase wire names)."""

    price_id: Optional[str] = Field(None, alias="priceId")
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")
    user_id: Optional[str] = Field(None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    url: Optional[str]


class ManageSubscriptionRequest(BaseModel):
    """POST /api/manage-subscription."""

    subscription_id: Optional[str] = Field(None, alias="subscriptionId")
    action: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionResponse(BaseModel):
    subscription: dict[str, Any]


class PriceItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    stripe_price_id: str
    currency: str
    unit_amount: int
    interval_type: str
    interval_count: int
    display: str


class ProductItem(BaseModel):
    id: str
    stripe_product_id: str
    name: str
    description: Optional[str] = None
    prices: list[PriceItem]


class ProductsResponse(BaseModel):
    products: list[ProductItem]


class SubscriptionsResponse(BaseModel):
    subscriptions: list[dict[str, Any]]


class CatalogSyncResponse(BaseModel):
    products: int
    prices: int


# ============================================================================
# Privacy / waitlist actions
# ============================================================================


class ActionResult(BaseModel):
    """Outcome envelope shared by the privacy and waitlist actions."""

    success: bool
    error: Optional[str] = None
    data: Optional[Any] = None


class PrivacyPreferencesRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email_updates: bool
    research_reports: bool
    marketing: bool


class AccountDeletionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: Optional[str] = None


class PrivacyRequestItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    request_type: str
    status: str
    request_details: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class WaitlistForm(_FormModel):
    """POST /waitlist form (``requested_features`` may repeat).

    ``user_id`` is the hidden field the browser form posts. It is accepted and
    ignored: the request is always filed under the session user.
    """

    request_type: str = ""
    priority_level: str = ""
    use_case_description: str = ""
    timeline_urgency: str = ""
    budget_range: str = ""
    team_size: str = ""
    current_tools: str = ""  # comma-separated
    requested_features: list[str] = Field(default_factory=list)
    user_id: str = ""

    def is_complete(self) -> bool:
        return bool(self.request_type and self.priority_level and self.use_case_description)


class WaitlistPreferencesRequest(BaseModel):
    """POST /waitlist/preferences (camelCase wire names)."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    request_type: str = Field(..., alias="requestType")
    priority_level: str = Field(..., alias="priorityLevel")
    budget_range: Optional[str] = Field(None, alias="budgetRange")


class WaitlistRequestItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    request_type: str
    priority_level: str
    use_case_description: str
    timeline_urgency: Optional[str] = None
    budget_range: Optional[str] = None
    team_size: Optional[int] = None
    current_tools: Optional[list[str]] = None
    requested_features: Optional[list[str]] = None
    status: str
    created_at: datetime
    updated_at: datetime


class WaitlistProfileStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    waitlist_status: Optional[str] = None
    waitlist_position: Optional[int] = None
    waitlist_joined_at: Optional[datetime] = None
    early_access_requested: bool = False
    early_access_granted: bool = False
    early_access_granted_at: Optional[datetime] = None


class WaitlistStatusResponse(BaseModel):
    profile: Optional[WaitlistProfileStatus] = None
    requests: list[WaitlistRequestItem]


# ============================================================================
# Operator endpoints
# ============================================================================


class PrivacyRequestStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["pending", "processing", "completed", "rejected"]
    notes: Optional[str] = None


class WaitlistRequestStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["pending", "reviewed", "approved", "notified", "converted"]
