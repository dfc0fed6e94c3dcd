"""Billing endpoints (checkout, subscription management, catalog).

Endpoints:
- POST /api/create-checkout-session: Hosted Stripe Checkout URL
- POST /api/manage-subscription: cancel / reactivate at period end
- GET /api/products: Active catalog for the pricing page
- GET /api/subscriptions: Caller's live Stripe subscriptions

Stripe failures are logged with their type and answered with a generic 500.
"""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from research_api.auth.session_auth import (
    SessionAuthContext,
    get_optional_session_auth_context,
    get_session_auth_context,
)
from research_api.billing import catalog, subscriptions
from research_api.billing.subscriptions import BillingError
from research_api.db.session import get_db
from research_api.problem_details import problem_exception
from research_api.schemas import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    ManageSubscriptionRequest,
    ProductsResponse,
    SubscriptionResponse,
    SubscriptionsResponse,
)

router = APIRouter(prefix="/api", tags=["billing"])
logger = logging.getLogger(__name__)

MANAGE_ACTIONS = ("cancel", "reactivate")


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    body: CheckoutSessionRequest,
    auth: Optional[SessionAuthContext] = Depends(get_optional_session_auth_context),
    db: Session = Depends(get_db),
) -> CheckoutSessionResponse:
    """Create a subscription Checkout Session.

    ``userId`` (optional) links the session to the profile's Stripe customer,
    creating the customer on first checkout. It must be the signed-in caller's
    own ID; anonymous callers may only check out without it.
    """
    if not body.price_id or not body.redirect_url:
        raise problem_exception(
            status.HTTP_400_BAD_REQUEST, "Bad Request", "Missing required parameters"
        )

    if body.user_id and (auth is None or auth.user_id != body.user_id):
        logger.warning(
            "billing.checkout.user_mismatch",
            extra={"authenticated": auth is not None, "price_id": body.price_id},
        )
        raise problem_exception(
            status.HTTP_403_FORBIDDEN, "Forbidden", "Cannot create a checkout session for another user"
        )

    try:
        url = subscriptions.create_checkout_session(
            db,
            price_id=body.price_id,
            redirect_url=body.redirect_url,
            user_id=body.user_id,
        )
    except (stripe.StripeError, BillingError) as e:
        logger.error(
            "billing.checkout.failed",
            extra={"error_type": type(e).__name__, "price_id": body.price_id},
        )
        raise problem_exception(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal Server Error",
            "Failed to create checkout session",
        )

    return CheckoutSessionResponse(url=url)


@router.post("/manage-subscription", response_model=SubscriptionResponse)
def manage_subscription(body: ManageSubscriptionRequest) -> SubscriptionResponse:
    """Cancel at period end or undo a scheduled cancellation."""
    if not body.subscription_id or not body.action:
        raise problem_exception(
            status.HTTP_400_BAD_REQUEST, "Bad Request", "Missing required parameters"
        )
    if body.action not in MANAGE_ACTIONS:
        raise problem_exception(status.HTTP_400_BAD_REQUEST, "Bad Request", "Invalid action")

    try:
        if body.action == "cancel":
            subscription = subscriptions.cancel_subscription(body.subscription_id)
        else:
            subscription = subscriptions.reactivate_subscription(body.subscription_id)
    except stripe.StripeError as e:
        logger.error(
            "billing.subscription.manage_failed",
            extra={
                "error_type": type(e).__name__,
                "subscription_id": body.subscription_id,
                "action": body.action,
            },
        )
        raise problem_exception(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal Server Error",
            "Failed to manage subscription",
        )

    return SubscriptionResponse(subscription=subscription)


@router.get("/products", response_model=ProductsResponse)
def list_products(db: Session = Depends(get_db)) -> ProductsResponse:
    return ProductsResponse(products=catalog.get_products(db))


@router.get("/subscriptions", response_model=SubscriptionsResponse)
def list_subscriptions(
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
) -> SubscriptionsResponse:
    try:
        items = subscriptions.get_user_subscriptions(db, auth.user_id)
    except stripe.StripeError as e:
        logger.error(
            "billing.subscriptions.fetch_failed",
            extra={"error_type": type(e).__name__, "user_id": auth.user_id},
        )
        raise problem_exception(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal Server Error",
            "Failed to fetch subscriptions",
        )
    return SubscriptionsResponse(subscriptions=items)
